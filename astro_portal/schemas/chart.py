# astro_portal/schemas/chart.py
from sqlmodel import SQLModel, Field
from typing import Optional, Dict, Any, List
from datetime import date
from pydantic import field_validator

from astro_portal.models.astrology import BirthLocation, ForecastPeriod

class BirthDataCreate(SQLModel):
    name: str = Field(..., min_length=1, description="Name shown on the chart")
    birth_date: date = Field(..., description="Date of birth")
    birth_time: Optional[str] = Field(default=None, description="Local time of birth, HH:MM")
    location: BirthLocation = Field(..., description="Place of birth")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()

class BirthChartUpdate(SQLModel):
    name: Optional[str] = None
    birth_time: Optional[str] = None
    birth_location: Optional[BirthLocation] = None
    is_public: Optional[bool] = None

class ReportCreate(SQLModel):
    birth_chart_id: str
    report_type: str = "natal"
    title: str = ""

class NatalReportCreate(SQLModel):
    birth_chart_id: str
    is_premium: bool = False

class TemplateReportOptions(SQLModel):
    title: Optional[str] = None
    is_premium: bool = False
    use_section_content: bool = True

class TemplateReportCreate(SQLModel):
    template_id: str
    birth_chart_id: str
    options: TemplateReportOptions = Field(default_factory=TemplateReportOptions)

class CompatibilityCreate(SQLModel):
    chart1_id: str
    chart2_id: str

    @field_validator("chart2_id")
    @classmethod
    def charts_differ(cls, v: str, info) -> str:
        if info.data.get("chart1_id") == v:
            raise ValueError("select two different birth charts")
        return v

class InterpretationCreate(SQLModel):
    interpretation_type: str = Field(..., min_length=1, description="e.g. personality, career, love")

class TransitForecastCreate(SQLModel):
    forecast_date: date
    period: ForecastPeriod = ForecastPeriod.MONTHLY

class StateSnapshot(SQLModel):
    """Loading and error flags of a user's store, without the collections."""
    birth_charts: int
    reports: int
    compatibility_reports: int
    current_chart_id: Optional[str] = None
    flags: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
