import logging
import math
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from astro_portal.models.astrology import (
    AspectData,
    AspectType,
    BirthLocation,
    ChartData,
    CompatibilityAnalysis,
    Coordinates,
    ElementalBalance,
    HouseCusp,
    LunarPhase,
    ModalBalance,
    PlanetPosition,
    RetrogradeInfo,
)

logger = logging.getLogger(__name__)


class ChartDataGenerator:
    """
    Placeholder chart data with the shape of a computed natal chart.

    Positions, houses, aspects and balances are pseudo-random; nothing here is
    an ephemeris. Pass a seeded `random.Random` for reproducible charts.
    """

    PLANETS = [
        "Sun", "Moon", "Mercury", "Venus", "Mars",
        "Jupiter", "Saturn", "Uranus", "Neptune", "Pluto",
        "North Node", "South Node", "Chiron"
    ]

    ZODIAC_SIGNS = [
        "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
        "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces"
    ]

    SIGN_ELEMENTS = {
        "Aries": "fire", "Leo": "fire", "Sagittarius": "fire",
        "Taurus": "earth", "Virgo": "earth", "Capricorn": "earth",
        "Gemini": "air", "Libra": "air", "Aquarius": "air",
        "Cancer": "water", "Scorpio": "water", "Pisces": "water",
    }

    COMPLEMENTARY_ELEMENTS = {("fire", "air"), ("air", "fire"), ("earth", "water"), ("water", "earth")}

    ASPECT_NATURE = {
        AspectType.CONJUNCTION: "neutral",
        AspectType.SEXTILE: "harmonious",
        AspectType.TRINE: "harmonious",
        AspectType.SQUARE: "challenging",
        AspectType.OPPOSITION: "challenging",
    }

    NEVER_RETROGRADE = {"Sun", "Moon"}
    ASPECT_PROBABILITY = 0.3
    MAX_ORB = 8.0

    # Sun, Moon and Venus weights for synastry scoring
    COMPATIBILITY_WEIGHTS = (("Sun", 0.3), ("Moon", 0.25), ("Venus", 0.2))

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate(self, location: BirthLocation) -> ChartData:
        planets = [self._planet(name) for name in self.PLANETS]
        ascendant = round(self.rng.random() * 360, 2)
        houses = self._houses(ascendant)
        retrogrades = [p.name for p in planets if p.retrograde]

        return ChartData(
            planets=planets,
            houses=houses,
            aspects=self._aspects(planets),
            ascendant=ascendant,
            midheaven=round((ascendant + 270) % 360, 2),
            elementalBalance=ElementalBalance(**dict(zip(("fire", "earth", "air", "water"), self._percentages(4)))),
            modalBalance=ModalBalance(**dict(zip(("cardinal", "fixed", "mutable"), self._percentages(3)))),
            retrogradeInfo=RetrogradeInfo(planets=retrogrades, count=len(retrogrades)),
            lunarPhase=self._lunar_phase(planets[0], planets[1]),
            calculatedAt=datetime.now(timezone.utc).isoformat(),
            coordinates=Coordinates(latitude=location.latitude, longitude=location.longitude),
            timezone=location.timezone,
        )

    @classmethod
    def sign_for_longitude(cls, longitude: float) -> str:
        return cls.ZODIAC_SIGNS[int(longitude // 30) % 12]

    def _planet(self, name: str) -> PlanetPosition:
        longitude = round(self.rng.random() * 360, 4) % 360
        within = longitude % 30
        degree = int(within)
        minutes_float = (within - degree) * 60
        minute = int(minutes_float)
        second = int((minutes_float - minute) * 60)
        return PlanetPosition(
            name=name,
            longitude=longitude,
            sign=self.sign_for_longitude(longitude),
            degree=degree,
            minute=minute,
            second=second,
            house=self.rng.randint(1, 12),
            retrograde=name not in self.NEVER_RETROGRADE and self.rng.random() < 0.2,
        )

    def _houses(self, ascendant: float) -> List[HouseCusp]:
        houses = []
        for h in range(12):
            cusp = round((ascendant + h * 30) % 360, 2)
            houses.append(HouseCusp(house=h + 1, cusp=cusp, sign=self.sign_for_longitude(cusp), degree=int(cusp % 30)))
        return houses

    def _aspects(self, planets: List[PlanetPosition]) -> List[AspectData]:
        aspects = []
        kinds = list(AspectType)
        n = len(planets)
        for i in range(n):
            for j in range(i + 1, n):
                if self.rng.random() >= self.ASPECT_PROBABILITY:
                    continue
                kind = self.rng.choice(kinds)
                # floor to 2 places so the orb stays strictly below MAX_ORB
                orb = math.floor(self.rng.random() * self.MAX_ORB * 100) / 100
                aspects.append(AspectData(
                    planet1=planets[i].name,
                    planet2=planets[j].name,
                    aspect=kind.value,
                    orb=orb,
                    exact=orb < 1,
                    strength="strong" if orb < 2 else "moderate" if orb < 5 else "weak",
                    nature=self.ASPECT_NATURE[kind],
                ))
        return aspects

    def _percentages(self, parts: int) -> List[int]:
        """Random integer shares summing to 100."""
        weights = [self.rng.randint(1, 10) for _ in range(parts)]
        total = sum(weights)
        shares = [w * 100 // total for w in weights]
        shares[-1] += 100 - sum(shares)
        return shares

    @staticmethod
    def _lunar_phase(sun: PlanetPosition, moon: PlanetPosition) -> LunarPhase:
        angle = (moon.longitude - sun.longitude) % 360
        names = [
            ("New Moon", "A time for new beginnings and setting intentions."),
            ("Waxing Crescent", "Energy builds; plans start to take shape."),
            ("First Quarter", "Action and decisions meet their first challenges."),
            ("Waxing Gibbous", "Refinement and patience before culmination."),
            ("Full Moon", "Culmination, awareness and emotional clarity."),
            ("Waning Gibbous", "Sharing what has been learned."),
            ("Last Quarter", "Release and re-evaluation."),
            ("Waning Crescent", "Rest and surrender before the next cycle."),
        ]
        phase, description = names[int(((angle + 22.5) % 360) // 45)]
        illumination = round((1 - math.cos(math.radians(angle))) / 2 * 100, 1)
        return LunarPhase(phase=phase, illumination=illumination, description=description)

    # --- compatibility ---

    @classmethod
    def sign_compatibility(cls, sign1: str, sign2: str) -> int:
        if sign1 == sign2:
            return 10
        element1 = cls.SIGN_ELEMENTS.get(sign1)
        element2 = cls.SIGN_ELEMENTS.get(sign2)
        if element1 is None or element2 is None:
            return 0
        if element1 == element2:
            return 20
        if (element1, element2) in cls.COMPLEMENTARY_ELEMENTS:
            return 15
        return 0

    @classmethod
    def calculate_compatibility_score(cls, chart1: ChartData, chart2: ChartData) -> int:
        score = 50.0
        for planet, weight in cls.COMPATIBILITY_WEIGHTS:
            p1 = chart1.planet(planet)
            p2 = chart2.planet(planet)
            if p1 and p2:
                score += cls.sign_compatibility(p1.sign, p2.sign) * weight
        # half-up rounding, not round()'s half-to-even
        return max(0, min(100, math.floor(score + 0.5)))

    def analyze_compatibility(self, chart1: ChartData, chart2: ChartData) -> CompatibilityAnalysis:
        """Score plus mocked elemental harmony and synastry aspect counts."""
        return CompatibilityAnalysis(
            score=self.calculate_compatibility_score(chart1, chart2),
            elementalHarmony={
                element: round(0.5 + self.rng.random() * 0.5, 2)
                for element in ("fire", "earth", "air", "water")
            },
            aspectAnalysis={
                "harmonious": self.rng.randint(5, 15),
                "challenging": self.rng.randint(2, 8),
                "neutral": self.rng.randint(3, 10),
            },
        )

    def horoscope_scores(self, floor: int, spread: int) -> Dict[str, Any]:
        """Love, career and health scores in [floor, floor + spread) plus three lucky numbers from 1-50."""
        return {
            "love_score": floor + self.rng.randrange(spread),
            "career_score": floor + self.rng.randrange(spread),
            "health_score": floor + self.rng.randrange(spread),
            "lucky_numbers": [self.rng.randint(1, 50) for _ in range(3)],
        }
