"""
Markdown bodies for generated reports.

Reports are built by string templating over a chart's `chart_data`; there is
no interpretation engine behind them. Headings use `##` so the PDF and HTML
exporters can split sections.
"""
import logging
from typing import List

from astro_portal.models.astrology import (
    BirthChart,
    ChartData,
    ReportTemplate,
    TemplateSection,
)
from astro_portal.services.chart_data import ChartDataGenerator

logger = logging.getLogger(__name__)

REPORT_TYPE_NAMES = {
    "natal": "Natal Chart Report",
    "personality": "Personality Profile",
    "career": "Career & Life Purpose Report",
    "relationships": "Love & Relationships Report",
    "yearly": "Yearly Forecast Report",
    "spiritual": "Spiritual Path Report",
    "vedic": "Vedic Astrology Report",
}

PREMIUM_REPORT_TYPES = {"career", "relationships", "yearly", "spiritual", "vedic", "natal-premium"}


def auto_report_title(name: str, report_type: str) -> str:
    type_name = REPORT_TYPE_NAMES.get(report_type, "Astrology Report")
    return f"{name}'s {type_name}"


def is_premium_report_type(report_type: str) -> bool:
    return report_type in PREMIUM_REPORT_TYPES or "premium" in report_type


def is_natal_report_type(report_type: str) -> bool:
    return report_type in ("natal", "birth-chart") or "natal" in report_type


def compatibility_level(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 70:
        return "very good"
    if score >= 60:
        return "good"
    if score >= 50:
        return "fair"
    return "challenging"


def compatibility_analysis_text(name1: str, name2: str, score: int) -> str:
    return (
        f"The compatibility between {name1} and {name2} shows a {compatibility_level(score)} "
        f"connection with a score of {score}%. This analysis is based on planetary positions, "
        "aspects, and elemental harmony between your birth charts. The cosmic energies suggest "
        "areas of natural harmony as well as opportunities for growth and understanding in your "
        "relationship."
    )


def generic_report_content(report_type: str, title: str) -> str:
    return (
        f"Complete {report_type} report: {title}. This comprehensive analysis provides deep "
        "insights into your astrological profile based on your birth chart data."
    )


def format_position(degree: int, minute: int, second: int) -> str:
    return f"{degree}°{minute}'{second}\""


def _big_three(data: ChartData) -> str:
    sun = data.planet("Sun")
    moon = data.planet("Moon")
    rising = ChartDataGenerator.sign_for_longitude(data.ascendant)
    parts = []
    if sun:
        parts.append(f"Sun in {sun.sign}")
    if moon:
        parts.append(f"Moon in {moon.sign}")
    parts.append(f"{rising} rising")
    return ", ".join(parts)


def planets_table(data: ChartData) -> str:
    lines = ["| Planet | Sign | House | Position |", "|---|---|---|---|"]
    for p in data.planets:
        name = f"{p.name} (R)" if p.retrograde else p.name
        lines.append(f"| {name} | {p.sign} | {p.house or '-'} | {format_position(p.degree, p.minute, p.second)} |")
    return "\n".join(lines)


def aspects_list(data: ChartData, limit: int = 12) -> str:
    if not data.aspects:
        return "No major aspects fall within orb in this chart."
    lines = []
    for a in data.aspects[:limit]:
        exact = " (exact)" if a.exact else ""
        lines.append(f"- **{a.planet1} {a.aspect} {a.planet2}**: orb {a.orb:.1f}°{exact}, {a.nature or 'neutral'}")
    return "\n".join(lines)


def balance_summary(data: ChartData) -> str:
    lines = []
    if data.elementalBalance:
        e = data.elementalBalance
        lines.append(f"- **Elements**: Fire {e.fire}%, Earth {e.earth}%, Air {e.air}%, Water {e.water}%")
    if data.modalBalance:
        m = data.modalBalance
        lines.append(f"- **Modalities**: Cardinal {m.cardinal}%, Fixed {m.fixed}%, Mutable {m.mutable}%")
    return "\n".join(lines) or "Elemental and modal balance were not recorded for this chart."


def houses_list(data: ChartData) -> str:
    if not data.houses:
        return "House cusps were not recorded for this chart."
    return "\n".join(f"- House {h.house}: {h.sign} {h.degree}°" for h in data.houses)


def section_filler(section: TemplateSection, chart: BirthChart) -> str:
    """Generated body for a template section that has no usable static content."""
    data = chart.chart_data
    kind = (section.type or "").lower()
    if kind in ("planets", "planetary_positions"):
        return planets_table(data)
    if kind == "aspects":
        return aspects_list(data)
    if kind == "houses":
        return houses_list(data)
    if kind in ("elements", "balance"):
        return balance_summary(data)
    return (
        f"{section.name} for {chart.name}. With {_big_three(data)}, this part of the chart "
        f"describes how {chart.name} expresses the themes of {section.name.lower()} in daily life."
    )


def build_template_content(template: ReportTemplate, chart: BirthChart, use_section_content: bool = True) -> str:
    """Concatenate every visible section, in order, under a `##` heading."""
    blocks: List[str] = []
    for section in template.ordered_sections():
        if use_section_content and section.content and section.content.strip():
            body = section.content.strip()
        else:
            body = section_filler(section, chart)
        blocks.append(f"## {section.name}\n\n{body}")
    return "\n\n".join(blocks) + "\n"


def natal_report_content(chart: BirthChart, is_premium: bool = False) -> str:
    data = chart.chart_data
    blocks = [
        f"# Natal Chart Report for {chart.name}",
        f"## Overview\n\nBorn {chart.birth_date}"
        + (f" at {chart.birth_time}" if chart.birth_time else "")
        + (f" in {chart.birth_location.city}, {chart.birth_location.country}" if chart.birth_location.city else "")
        + f". The core of this chart is {_big_three(data)}.",
        f"## Planetary Positions\n\n{planets_table(data)}",
        f"## Major Aspects\n\n{aspects_list(data)}",
        f"## Elemental and Modal Balance\n\n{balance_summary(data)}",
    ]
    if data.retrogradeInfo and data.retrogradeInfo.count:
        blocks.append(
            "## Retrograde Planets\n\n"
            f"{data.retrogradeInfo.count} planets were retrograde at birth: {', '.join(data.retrogradeInfo.planets)}."
        )
    if data.lunarPhase:
        blocks.append(
            f"## Lunar Phase\n\n**{data.lunarPhase.phase}** "
            f"({data.lunarPhase.illumination}% illuminated). {data.lunarPhase.description}"
        )
    if is_premium:
        blocks.append(f"## House Cusps\n\n{houses_list(data)}")
        blocks.append(
            "## Life Path Guidance\n\n"
            f"The interplay of {_big_three(data)} points to a path where personal will, emotional needs "
            "and outward style must be brought into conversation with one another."
        )
    blocks.append(
        f"## Conclusion\n\nThis report summarises the main features of {chart.name}'s birth chart. "
        "Return to it as transits activate the placements described above."
    )
    return "\n\n".join(blocks) + "\n"


def vedic_report_content(chart: BirthChart, is_premium: bool = False) -> str:
    data = chart.chart_data
    moon = data.planet("Moon")
    rising = ChartDataGenerator.sign_for_longitude(data.ascendant)
    sections = [
        ("Introduction",
         f"This Vedic astrology report for {chart.name} reads the birth chart through the "
         "lens of Jyotish, the traditional astrology of India."),
        ("Janma Kundali (Birth Chart)",
         f"The Lagna (ascendant) falls in {rising}, with {_big_three(data)}.\n\n{planets_table(data)}"),
        ("Bhava (House) Analysis", houses_list(data)),
        ("Graha (Planet) Analysis", aspects_list(data)),
        ("Nakshatra Insights",
         f"The Moon in {moon.sign if moon else 'its sign'} colours the mind and emotional nature; "
         "its nakshatra describes the instinctive responses that guide daily choices."),
    ]
    if is_premium:
        sections += [
            ("Vimshottari Dasha Analysis",
             "The planetary periods unfold in the Vimshottari sequence starting from the Moon's nakshatra lord."),
            ("Yogas and Doshas", balance_summary(data)),
            ("Planetary Strengths",
             f"{data.retrogradeInfo.count if data.retrogradeInfo else 0} grahas are retrograde, "
             "turning their significations inward."),
            ("Transits and Gochar",
             "Slow-moving transits of Saturn and Jupiter over the Moon sign mark the main turning points ahead."),
        ]
    sections += [
        ("Remedies and Spiritual Guidance",
         "Regular meditation, charity on the day ruled by a weak graha and mantra recitation are the traditional remedies."),
        ("Conclusion", f"May this reading support {chart.name} on the path of self-understanding."),
    ]
    blocks = ["# Vedic Astrology Report"] + [f"## {name}\n\n{body}" for name, body in sections]
    return "\n\n".join(blocks) + "\n"


# --- interpretations, horoscopes and transit forecasts ---

HOROSCOPE_THEMES = {
    "Aries": "energy and leadership",
    "Taurus": "stability and material comfort",
    "Gemini": "communication and learning",
    "Cancer": "emotions and family connections",
    "Leo": "creativity and self-expression",
    "Virgo": "organization and attention to detail",
    "Libra": "balance and relationships",
    "Scorpio": "transformation and deep insights",
    "Sagittarius": "adventure and philosophical growth",
    "Capricorn": "ambition and practical achievements",
    "Aquarius": "innovation and humanitarian efforts",
    "Pisces": "intuition and spiritual connection",
}

FORECAST_PERIOD_INTROS = {
    "daily": "Today's planetary transits",
    "weekly": "This week's cosmic influences",
    "monthly": "This month's astrological forecast",
    "yearly": "This year's major planetary movements",
}


def interpretation_text(chart: BirthChart, interpretation_type: str) -> str:
    sun = chart.chart_data.planet("Sun")
    sun_line = f" With the Sun in {sun.sign}, " if sun else " "
    return (
        f"This is a {interpretation_type} interpretation for {chart.name}'s chart."
        f"{sun_line}your astrological profile reveals unique insights about your personality "
        "and life path."
    )


def daily_horoscope_text(zodiac_sign: str) -> str:
    theme = HOROSCOPE_THEMES.get(zodiac_sign, "new beginnings")
    return (
        f"Today highlights {theme} for {zodiac_sign}. The cosmic energies support your natural "
        "talents and encourage you to embrace new opportunities. Trust your instincts and take "
        "positive action toward your goals."
    )


def fallback_horoscope_text(zodiac_sign: str) -> str:
    theme = HOROSCOPE_THEMES.get(zodiac_sign, "new beginnings")
    return (
        f"Today brings positive energy for {zodiac_sign}. The cosmic influences highlight {theme}. "
        "Trust your instincts and embrace new opportunities that align with your natural talents."
    )


def transit_forecast_text(forecast_date: str, period: str) -> str:
    intro = FORECAST_PERIOD_INTROS.get(period, "Upcoming planetary transits")
    return (
        f"{intro} starting {forecast_date} indicate significant cosmic shifts that will influence "
        "your life path. Key planetary movements suggest opportunities for growth, transformation, "
        "and positive change. Pay attention to intuitive insights and be open to new possibilities "
        f"during this {period} period."
    )
