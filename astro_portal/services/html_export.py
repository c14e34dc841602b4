import html
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from astro_portal.models.astrology import AstrologyReport, BirthChart
from astro_portal.schemas.export import ExportOptions

logger = logging.getLogger(__name__)

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)")
_TABLE_SEPARATOR_RE = re.compile(r"^\|?\s*:?-{3,}")

RENDERED_CSS = """
body { font-family: Georgia, 'Times New Roman', serif; line-height: 1.6; color: #1f2937; background: #faf5ff; }
.report { max-width: 820px; margin: 2rem auto; padding: 2.5rem; background: #fff; border-radius: 12px; }
.brand { text-align: center; letter-spacing: .2em; color: #6b7280; font-size: .75rem; }
h1 { color: #4c1d95; } h2 { color: #5b21b6; border-bottom: 1px solid #ede9fe; padding-bottom: .25rem; }
table { border-collapse: collapse; width: 100%; margin: 1rem 0; }
th, td { border: 1px solid #c4b5fd; padding: .35rem .6rem; text-align: left; }
th { background: #ede9fe; }
.birth-info td:first-child { font-weight: bold; color: #4c1d95; width: 30%; }
.meta { color: #6b7280; font-size: .8rem; margin-top: 2rem; }
"""

LEGACY_CSS = """
body { font-family: Arial, sans-serif; margin: 0; padding: 20px; background: #0f0f23; color: #e5e7eb; }
.container { max-width: 900px; margin: 0 auto; }
.header { text-align: center; padding: 30px; background: linear-gradient(135deg, #d97706, #ea580c); border-radius: 16px; }
.header h1 { margin: 0; color: #fff; }
.section { background: #1e1b3a; border-radius: 12px; padding: 24px; margin: 20px 0; }
.section h2 { color: #fbbf24; margin-top: 0; }
.premium { display: inline-block; background: #f59e0b; color: #111; padding: 2px 8px; border-radius: 9999px; }
.footer { text-align: center; color: #9ca3af; font-size: 12px; margin-top: 30px; }
"""


def _inline(text: str) -> str:
    escaped = html.escape(text, quote=False)
    escaped = _BOLD_RE.sub(r"<strong>\1</strong>", escaped)
    return _ITALIC_RE.sub(r"<em>\1</em>", escaped)


def markdown_to_html(content: str) -> str:
    """Headings, bullet lists, pipe tables, paragraphs and emphasis."""
    out: List[str] = []
    paragraph: List[str] = []
    bullets: List[str] = []
    rows: List[List[str]] = []

    def flush():
        if paragraph:
            out.append(f"<p>{_inline(' '.join(paragraph))}</p>")
            paragraph.clear()
        if bullets:
            out.append("<ul>" + "".join(f"<li>{_inline(b)}</li>" for b in bullets) + "</ul>")
            bullets.clear()
        if rows:
            head, *body = rows
            out.append(
                "<table><thead><tr>" + "".join(f"<th>{_inline(c)}</th>" for c in head) + "</tr></thead><tbody>"
                + "".join("<tr>" + "".join(f"<td>{_inline(c)}</td>" for c in r) + "</tr>" for r in body)
                + "</tbody></table>"
            )
            rows.clear()

    for raw in (content or "").splitlines():
        line = raw.strip()
        if line.startswith("|"):
            if paragraph or bullets:
                flush()
            if not _TABLE_SEPARATOR_RE.match(line):
                rows.append([c.strip() for c in line.strip("|").split("|")])
            continue
        if rows:
            flush()
        if not line:
            flush()
            continue
        heading = re.match(r"^(#{1,3}) (.*)$", line)
        if heading:
            flush()
            level = len(heading.group(1))
            out.append(f"<h{level}>{_inline(heading.group(2))}</h{level}>")
        elif line[:2] in ("- ", "* "):
            if paragraph:
                out.append(f"<p>{_inline(' '.join(paragraph))}</p>")
                paragraph.clear()
            bullets.append(line[2:])
        else:
            if bullets:
                flush()
            paragraph.append(line)
    flush()
    return "\n".join(out)


def split_sections(content: str) -> List[Tuple[str, str]]:
    """(heading, body) pairs for every `## ` heading; text before the first goes under ''."""
    sections: List[Tuple[str, str]] = []
    current_title, current_body = "", []
    for line in (content or "").splitlines():
        if line.startswith("## "):
            if current_title or "".join(current_body).strip():
                sections.append((current_title, "\n".join(current_body).strip()))
            current_title, current_body = line[3:].strip(), []
        elif not line.startswith("# "):
            current_body.append(line)
    if current_title or "".join(current_body).strip():
        sections.append((current_title, "\n".join(current_body).strip()))
    return sections


def _format_content_text(text: str) -> str:
    escaped = _inline(text)
    return "<p>" + escaped.replace("\n\n", "</p><p>").replace("\n", "<br>") + "</p>"


def _birth_info_rows(chart: BirthChart) -> str:
    loc = chart.birth_location
    place = ", ".join(p for p in (loc.city, loc.country) if p) or "-"
    rows = [
        ("Name", chart.name),
        ("Birth date", chart.birth_date[:10]),
        ("Birth time", chart.birth_time or "Unknown"),
        ("Birth place", place),
    ]
    return "".join(f"<tr><td>{html.escape(k)}</td><td>{html.escape(v)}</td></tr>" for k, v in rows)


def _type_label(report_type: str) -> str:
    return report_type.replace("-", " ", 1).title()


def build_report_html(
    report: AstrologyReport,
    chart: Optional[BirthChart] = None,
    options: Optional[ExportOptions] = None,
    legacy: bool = False,
) -> str:
    """Standalone HTML document for a report; `legacy` selects the older dark-card layout."""
    options = options or ExportOptions()
    title = html.escape(report.title)
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    if legacy:
        sections = "".join(
            f'<div class="section">{f"<h2>{html.escape(name)}</h2>" if name else ""}{_format_content_text(body)}</div>'
            for name, body in split_sections(report.content)
        )
        premium = ' <span class="premium">Premium</span>' if report.is_premium else ""
        subtitle = f"<p>{html.escape(_type_label(report.report_type))} Report{premium}</p>" if options.include_header else ""
        return (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            f"<title>{title}</title><style>{LEGACY_CSS}</style></head><body><div class=\"container\">"
            f"<div class=\"header\"><h1>{title}</h1>{subtitle}</div>"
            f"{sections}"
            + (f"<div class=\"footer\">Generated {generated}</div>" if options.include_metadata else "")
            + "</div></body></html>"
        )

    parts = ["<!DOCTYPE html>", "<html lang=\"en\">", "<head>", "<meta charset=\"utf-8\">",
             f"<title>{title}</title>", f"<style>{RENDERED_CSS}</style>", "</head>", "<body>",
             "<article class=\"report\">"]
    if options.include_header:
        parts.append("<div class=\"brand\">ASTRO PORTAL</div>")
    parts.append(f"<h1>{title}</h1>")
    if options.include_birth_info and chart is not None:
        parts.append(f"<table class=\"birth-info\">{_birth_info_rows(chart)}</table>")
    parts.append(markdown_to_html(report.content))
    if options.include_metadata:
        created = report.created_at.strftime("%Y-%m-%d") if report.created_at else "-"
        parts.append(
            f"<p class=\"meta\">{html.escape(_type_label(report.report_type))} report"
            f"{' (premium)' if report.is_premium else ''}, created {created}, generated {generated}</p>"
        )
    parts += ["</article>", "</body>", "</html>"]
    return "\n".join(parts)
