"""
PDF renderers for astrology reports.

`ReportPDFRenderer` lays out the full document with reportlab platypus.
`TextPDFRenderer` is the degraded path: plain text lines on A4 pages via fpdf2,
used when the full layout raises.
"""
import logging
import re
import textwrap
from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

from fpdf import FPDF
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import (
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from astro_portal.models.astrology import AstrologyReport, BirthChart
from astro_portal.schemas.export import ExportOptions
from astro_portal.services.report_content import format_position, is_natal_report_type

logger = logging.getLogger(__name__)

PDF_FONT_REG = "Helvetica"
PDF_FONT_BOLD = "Helvetica-Bold"

ACCENT = colors.HexColor("#4c1d95")
MUTED = colors.HexColor("#6b7280")

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)")
_TABLE_SEPARATOR_RE = re.compile(r"^\|?\s*:?-{3,}")

ReportItem = Tuple[AstrologyReport, Optional[BirthChart]]


def _inline(text: str) -> str:
    """Escape for reportlab's mini-markup, then map markdown emphasis to tags."""
    escaped = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    escaped = _BOLD_RE.sub(r"<b>\1</b>", escaped)
    return _ITALIC_RE.sub(r"<i>\1</i>", escaped)


class ReportPDFRenderer:
    """Full A4 layout: title, birth data, markdown body, natal tables, metadata, page numbers."""

    def __init__(self):
        base = getSampleStyleSheet()
        self.styles = {
            "brand": ParagraphStyle("Brand", parent=base["Normal"], fontName=PDF_FONT_BOLD,
                                    fontSize=9, textColor=MUTED, alignment=TA_CENTER),
            "title": ParagraphStyle("ReportTitle", parent=base["Title"], fontName=PDF_FONT_BOLD,
                                    fontSize=22, leading=26, textColor=ACCENT, spaceAfter=12),
            "h1": ParagraphStyle("H1", parent=base["Heading1"], fontName=PDF_FONT_BOLD,
                                 fontSize=17, textColor=ACCENT, spaceBefore=10, spaceAfter=6),
            "h2": ParagraphStyle("H2", parent=base["Heading2"], fontName=PDF_FONT_BOLD,
                                 fontSize=14, textColor=ACCENT, spaceBefore=10, spaceAfter=4),
            "h3": ParagraphStyle("H3", parent=base["Heading3"], fontName=PDF_FONT_BOLD,
                                 fontSize=12, spaceBefore=6, spaceAfter=3),
            "body": ParagraphStyle("Body", parent=base["BodyText"], fontName=PDF_FONT_REG,
                                   fontSize=10.5, leading=15, spaceAfter=6),
            "bullet": ParagraphStyle("Bullet", parent=base["BodyText"], fontName=PDF_FONT_REG,
                                     fontSize=10.5, leading=14, leftIndent=14, bulletIndent=4),
            "cell": ParagraphStyle("Cell", parent=base["Normal"], fontName=PDF_FONT_REG,
                                   fontSize=9, leading=11),
            "meta": ParagraphStyle("Meta", parent=base["Normal"], fontName=PDF_FONT_REG,
                                   fontSize=8.5, textColor=MUTED),
        }

    # --- public API ---

    def render(self, report: AstrologyReport, chart: Optional[BirthChart], options: ExportOptions) -> bytes:
        return self.render_many([(report, chart)], options, title=report.title)

    def render_many(self, items: Sequence[ReportItem], options: ExportOptions, title: str = "Astrology Reports") -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=2 * cm, rightMargin=2 * cm,
            topMargin=2 * cm, bottomMargin=2 * cm,
            title=title,
            author="Astro Portal",
        )
        story = []
        for index, (report, chart) in enumerate(items):
            if index:
                story.append(PageBreak())
            story.extend(self._report_story(report, chart, options))
        doc.build(story, onFirstPage=self._draw_page_number, onLaterPages=self._draw_page_number)
        return buffer.getvalue()

    # --- story building ---

    def _report_story(self, report: AstrologyReport, chart: Optional[BirthChart], options: ExportOptions) -> list:
        story = []
        if options.include_header:
            story.append(Paragraph("ASTRO PORTAL", self.styles["brand"]))
            story.append(Spacer(1, 6))
        story.append(Paragraph(_inline(report.title), self.styles["title"]))

        if options.include_birth_info and chart is not None:
            story.append(self._birth_info_table(chart))
            story.append(Spacer(1, 12))

        story.extend(self.markdown_flowables(report.content))

        if chart is not None and is_natal_report_type(report.report_type):
            story.extend(self._natal_tables(chart))

        if options.include_metadata:
            story.append(Spacer(1, 16))
            created = report.created_at.strftime("%Y-%m-%d") if report.created_at else "-"
            story.append(Paragraph(
                f"Report type: {_inline(report.report_type)} &nbsp;|&nbsp; "
                f"Created: {created} &nbsp;|&nbsp; "
                f"{'Premium' if report.is_premium else 'Standard'} report &nbsp;|&nbsp; "
                f"Generated {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M')} UTC",
                self.styles["meta"],
            ))
        return story

    def markdown_flowables(self, content: str) -> list:
        """Convert the report's markdown subset (headings, bullets, pipe tables, emphasis)."""
        flowables = []
        paragraph: List[str] = []
        table_rows: List[List[str]] = []

        def flush_paragraph():
            if paragraph:
                flowables.append(Paragraph(_inline(" ".join(paragraph)), self.styles["body"]))
                paragraph.clear()

        def flush_table():
            if table_rows:
                cells = [[Paragraph(_inline(c), self.styles["cell"]) for c in row] for row in table_rows]
                flowables.append(self._grid(cells))
                flowables.append(Spacer(1, 8))
                table_rows.clear()

        for raw in (content or "").splitlines():
            line = raw.strip()
            if line.startswith("|"):
                flush_paragraph()
                if not _TABLE_SEPARATOR_RE.match(line):
                    table_rows.append([cell.strip() for cell in line.strip("|").split("|")])
                continue
            flush_table()
            if not line:
                flush_paragraph()
            elif line.startswith("### "):
                flush_paragraph()
                flowables.append(Paragraph(_inline(line[4:]), self.styles["h3"]))
            elif line.startswith("## "):
                flush_paragraph()
                flowables.append(Paragraph(_inline(line[3:]), self.styles["h2"]))
            elif line.startswith("# "):
                flush_paragraph()
                flowables.append(Paragraph(_inline(line[2:]), self.styles["h1"]))
            elif line[:2] in ("- ", "* "):
                flush_paragraph()
                flowables.append(Paragraph(_inline(line[2:]), self.styles["bullet"], bulletText="•"))
            else:
                paragraph.append(line)
        flush_paragraph()
        flush_table()
        return flowables

    def _birth_info_table(self, chart: BirthChart) -> Table:
        location = chart.birth_location
        place = ", ".join(part for part in (location.city, location.country) if part) or "-"
        rows = [
            ["Name", chart.name],
            ["Birth date", chart.birth_date[:10]],
            ["Birth time", chart.birth_time or "Unknown"],
            ["Birth place", place],
            ["Coordinates", f"{location.latitude:.4f}, {location.longitude:.4f} ({location.timezone})"],
        ]
        table = Table(rows, colWidths=[4 * cm, 12 * cm])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), PDF_FONT_BOLD),
            ("FONTNAME", (1, 0), (1, -1), PDF_FONT_REG),
            ("FONTSIZE", (0, 0), (-1, -1), 9.5),
            ("TEXTCOLOR", (0, 0), (0, -1), ACCENT),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ("LINEBELOW", (0, -1), (-1, -1), 0.5, MUTED),
        ]))
        return table

    def _natal_tables(self, chart: BirthChart) -> list:
        data = chart.chart_data
        story = []
        if data.planets:
            story.append(Paragraph("Planetary Positions", self.styles["h2"]))
            rows = [["Planet", "Sign", "House", "Degree"]]
            for p in data.planets:
                rows.append([p.name, p.sign, str(p.house or 0), format_position(p.degree, p.minute, p.second)])
            story.append(self._grid(rows))
        if data.aspects:
            story.append(Paragraph("Aspect Table", self.styles["h2"]))
            rows = [["Aspect", "Planets", "Orb", "Meaning"]]
            for a in data.aspects[:12]:
                rows.append([a.aspect, f"{a.planet1} - {a.planet2}", f"{a.orb:.1f}°", a.description or a.nature or "-"])
            story.append(self._grid(rows))
        if data.elementalBalance or data.modalBalance:
            story.append(Paragraph("Elemental and Modal Balance", self.styles["h2"]))
            rows = [["Quality", "Share"]]
            if data.elementalBalance:
                rows += [[k.title(), f"{v}%"] for k, v in data.elementalBalance.model_dump().items()]
            if data.modalBalance:
                rows += [[k.title(), f"{v}%"] for k, v in data.modalBalance.model_dump().items()]
            story.append(self._grid(rows))
        return story

    @staticmethod
    def _grid(rows: List[List[str]]) -> Table:
        width = max(len(r) for r in rows)
        rows = [r + [""] * (width - len(r)) for r in rows]
        table = Table(rows, repeatRows=1, hAlign="LEFT")
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), PDF_FONT_BOLD),
            ("FONTNAME", (0, 1), (-1, -1), PDF_FONT_REG),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#ede9fe")),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#c4b5fd")),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))
        return table

    @staticmethod
    def _draw_page_number(canvas, doc):
        canvas.saveState()
        canvas.setFont(PDF_FONT_REG, 8)
        canvas.setFillColor(MUTED)
        canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
        canvas.restoreState()


class TextPDFRenderer:
    """Text-only PDF: the title on the first line, then wrapped report text, fixed lines per page."""

    LINE_HEIGHT = 14
    MARGIN = 50
    WRAP_WIDTH = 90

    def __init__(self, lines_per_page: int = 50):
        if lines_per_page < 1:
            raise ValueError("lines_per_page must be positive")
        self.lines_per_page = lines_per_page

    @staticmethod
    def _safe(text: str) -> str:
        # core fonts are latin-1 only
        return text.encode("latin-1", errors="replace").decode("latin-1")

    def layout(self, title: str, text: str) -> List[List[str]]:
        """Split into pages of at most `lines_per_page` lines; page one starts with the title."""
        lines = [title, ""]
        for raw in (text or "").splitlines():
            stripped = raw.rstrip()
            if not stripped:
                lines.append("")
                continue
            lines.extend(textwrap.wrap(stripped, width=self.WRAP_WIDTH) or [""])
        return [lines[i:i + self.lines_per_page] for i in range(0, len(lines), self.lines_per_page)]

    def render(self, title: str, text: str) -> bytes:
        return self.render_many([(title, text)], document_title=title)

    def render_many(self, items: Sequence[Tuple[str, str]], document_title: str = "Astrology Reports") -> bytes:
        """One text document per (title, text) pair, each starting on a new page."""
        pdf = FPDF(unit="pt", format="A4")
        pdf.set_title(self._safe(document_title))
        pdf.set_auto_page_break(False)
        for title, text in items:
            self._write_pages(pdf, self.layout(title, text))
        return bytes(pdf.output())

    def _write_pages(self, pdf: FPDF, pages: List[List[str]]) -> None:
        for page_number, page in enumerate(pages):
            pdf.add_page()
            y = self.MARGIN
            for line_number, line in enumerate(page):
                is_title = page_number == 0 and line_number == 0
                pdf.set_font("Helvetica", "B" if is_title else "", 14 if is_title else 10)
                if line:
                    pdf.text(self.MARGIN, y, self._safe(line))
                y += self.LINE_HEIGHT
