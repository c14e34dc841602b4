from sqlmodel import SQLModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

# Enums define the allowed values for report and aspect fields.
class ReportType(str, Enum):
    NATAL = "natal"
    NATAL_PREMIUM = "natal-premium"
    PERSONALITY = "personality"
    CAREER = "career"
    RELATIONSHIPS = "relationships"
    YEARLY = "yearly"
    SPIRITUAL = "spiritual"
    VEDIC = "vedic"
    TRANSIT = "transit"
    COMPATIBILITY = "compatibility"

class AspectType(str, Enum):
    CONJUNCTION = "conjunction"
    SEXTILE = "sextile"
    SQUARE = "square"
    TRINE = "trine"
    OPPOSITION = "opposition"

class ZodiacSign(str, Enum):
    ARIES = "Aries"
    TAURUS = "Taurus"
    GEMINI = "Gemini"
    CANCER = "Cancer"
    LEO = "Leo"
    VIRGO = "Virgo"
    LIBRA = "Libra"
    SCORPIO = "Scorpio"
    SAGITTARIUS = "Sagittarius"
    CAPRICORN = "Capricorn"
    AQUARIUS = "Aquarius"
    PISCES = "Pisces"

class ForecastPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BirthLocation(SQLModel):
    city: str = ""
    country: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    timezone: str = "UTC"


# --- chart_data blob ---
# Field names follow the stored JSON so rows written by other clients stay readable.

class PlanetPosition(SQLModel):
    name: str
    longitude: float
    sign: str
    degree: int
    minute: int
    second: int
    house: Optional[int] = None
    retrograde: bool = False

class HouseCusp(SQLModel):
    house: int
    cusp: float
    sign: str
    degree: int

class AspectData(SQLModel):
    planet1: str
    planet2: str
    aspect: str
    orb: float
    exact: bool = False
    strength: Optional[str] = None
    nature: Optional[str] = None
    description: Optional[str] = None

class ElementalBalance(SQLModel):
    fire: int = 25
    earth: int = 25
    air: int = 25
    water: int = 25

class ModalBalance(SQLModel):
    cardinal: int = 34
    fixed: int = 33
    mutable: int = 33

class RetrogradeInfo(SQLModel):
    planets: List[str] = Field(default_factory=list)
    count: int = 0

class LunarPhase(SQLModel):
    phase: str
    illumination: float
    description: str

class Coordinates(SQLModel):
    latitude: float = 0.0
    longitude: float = 0.0

class ChartData(SQLModel):
    planets: List[PlanetPosition] = Field(default_factory=list)
    houses: List[HouseCusp] = Field(default_factory=list)
    aspects: List[AspectData] = Field(default_factory=list)
    ascendant: float = 0.0
    midheaven: float = 0.0
    elementalBalance: Optional[ElementalBalance] = None
    modalBalance: Optional[ModalBalance] = None
    retrogradeInfo: Optional[RetrogradeInfo] = None
    lunarPhase: Optional[LunarPhase] = None
    calculatedAt: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    timezone: Optional[str] = None

    def planet(self, name: str) -> Optional[PlanetPosition]:
        return next((p for p in self.planets if p.name == name), None)


# --- rows ---

class BirthChart(SQLModel):
    """A row of the `birth_charts` table."""
    id: str
    user_id: Optional[str] = None
    name: str
    birth_date: str
    birth_time: Optional[str] = None
    birth_location: BirthLocation = Field(default_factory=BirthLocation)
    chart_data: ChartData = Field(default_factory=ChartData)
    chart_type: str = "natal"
    is_public: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AstrologyReport(SQLModel):
    """A row of the `astrology_reports` table. `content` is markdown."""
    id: str
    user_id: Optional[str] = None
    birth_chart_id: str
    report_type: str
    title: str
    content: str = ""
    is_premium: bool = False
    template_id: Optional[str] = None
    chart_image_url: Optional[str] = None
    pdf_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class CompatibilityAnalysis(SQLModel):
    score: int
    elementalHarmony: Dict[str, float] = Field(default_factory=dict)
    aspectAnalysis: Dict[str, int] = Field(default_factory=dict)

class CompatibilityReport(SQLModel):
    id: str
    user_id: Optional[str] = None
    chart1_id: str
    chart2_id: str
    compatibility_score: int
    detailed_analysis: Optional[CompatibilityAnalysis] = None
    report_content: str = ""
    astrology_system: str = "western"
    created_at: Optional[datetime] = None

class AstrologicalInterpretation(SQLModel):
    """A row of `astrological_interpretations`: short text attached to one chart."""
    id: str
    birth_chart_id: str
    interpretation_type: str
    content: str = ""
    ai_generated: bool = True
    astrology_system: str = "western"
    confidence_score: int = 85
    created_at: Optional[datetime] = None

class DailyHoroscope(SQLModel):
    """
    A row of `daily_horoscopes`, unique per (zodiac_sign, date).

    Horoscopes made up on the spot when no row exists carry an id of the form
    `fallback-{sign}-{date}` and are never stored.
    """
    id: str
    zodiac_sign: str
    date: str
    content: str
    love_score: int
    career_score: int
    health_score: int
    lucky_numbers: List[int] = Field(default_factory=list)
    lucky_colors: List[str] = Field(default_factory=list)
    ai_generated: bool = True
    created_at: Optional[datetime] = None

    @property
    def is_fallback(self) -> bool:
        return self.id.startswith("fallback-")

class TransitForecast(SQLModel):
    id: str
    birth_chart_id: str
    forecast_date: str
    forecast_period: str
    planetary_transits: Dict[str, Any] = Field(default_factory=dict)
    forecast_content: str = ""
    significance_level: str = "medium"
    created_at: Optional[datetime] = None

class TemplateSection(SQLModel):
    id: str
    name: str
    type: str = "text"
    content: Optional[str] = None
    order: int = 0
    is_required: bool = False
    is_visible: bool = True

class ReportTemplate(SQLModel):
    id: str
    name: str
    description: Optional[str] = None
    report_type: str
    category_id: Optional[str] = None
    sections: List[TemplateSection] = Field(default_factory=list)
    is_active: bool = True
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def ordered_sections(self) -> List[TemplateSection]:
        """Visible sections in display order."""
        return sorted((s for s in self.sections if s.is_visible), key=lambda s: s.order)

class TemplateCategory(SQLModel):
    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int = 0
    created_at: Optional[datetime] = None


class PlanLimits(SQLModel):
    can_create_chart: bool = True
    can_create_report: bool = True
    chart_limit: int = 5
    report_limit: int = 5
    chart_count: int = 0
    report_count: int = 0


class AstrologyState(SQLModel):
    """Everything a signed-in user's dashboard reads from the store."""
    birth_charts: List[BirthChart] = Field(default_factory=list)
    current_chart: Optional[BirthChart] = None
    reports: List[AstrologyReport] = Field(default_factory=list)
    compatibility_reports: List[CompatibilityReport] = Field(default_factory=list)
    templates: List[ReportTemplate] = Field(default_factory=list)
    template_categories: List[TemplateCategory] = Field(default_factory=list)
    interpretations: List[AstrologicalInterpretation] = Field(default_factory=list)
    daily_horoscopes: List[DailyHoroscope] = Field(default_factory=list)
    transit_forecasts: List[TransitForecast] = Field(default_factory=list)

    birth_charts_loading: bool = False
    birth_charts_error: Optional[str] = None
    reports_loading: bool = False
    reports_error: Optional[str] = None
    compatibility_loading: bool = False
    compatibility_error: Optional[str] = None
    templates_loading: bool = False
    templates_error: Optional[str] = None
    insights_loading: bool = False
    insights_error: Optional[str] = None

    pdf_exporting: bool = False
    pdf_error: Optional[str] = None
    error: Optional[str] = None
