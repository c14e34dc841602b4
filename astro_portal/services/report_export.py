"""
Report export pipeline.

PDFs are rendered from report data. The full reportlab layout is tried first;
if it raises, a text-only fpdf2 document is produced instead. The whole render
runs in a worker thread under a watchdog: when it does not finish within
`PDF_EXPORT_TIMEOUT_SECONDS` the exporter returns to idle, queues an error
notification and raises `ExportTimeout`. The worker itself cannot be cancelled;
whatever it produces afterwards is discarded.
"""
import asyncio
import logging
import re
from typing import Callable, Optional, Sequence, Tuple

from astro_portal.core.config import settings
from astro_portal.core.exceptions import ExportError, ExportTimeout
from astro_portal.core.logging_config import OperationTimer, log_error
from astro_portal.models.astrology import AstrologyReport, BirthChart
from astro_portal.schemas.export import ExportedFile, ExportOptions, ExportState
from astro_portal.services.html_export import build_report_html
from astro_portal.services.notifications import NotificationQueue
from astro_portal.services.pdf_renderer import ReportPDFRenderer, TextPDFRenderer

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
HTML_MEDIA_TYPE = "text/html"
BATCH_TITLE = "Astrology Reports Collection"

_UNSAFE_FILENAME_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def safe_filename(title: str, extension: str, file_name: Optional[str] = None) -> str:
    """
    `file_name` (trimmed) wins when given; otherwise every character of the title
    outside a-z/0-9 becomes `_` and the result is lower-cased.
    """
    suffix = f".{extension}"
    if file_name and file_name.strip():
        name = file_name.strip()
        return name if name.lower().endswith(suffix) else name + suffix
    return _UNSAFE_FILENAME_RE.sub("_", title).lower() + suffix


def plain_text(content: str) -> str:
    """Report markdown reduced to readable text for the fallback PDF."""
    lines = []
    for raw in (content or "").splitlines():
        line = raw.strip()
        if re.match(r"^\|?\s*:?-{3,}", line):
            continue
        if line.startswith("|"):
            line = "  ".join(cell.strip() for cell in line.strip("|").split("|"))
        line = re.sub(r"^#{1,6}\s+", "", line)
        line = line.replace("**", "")
        if line[:2] == "* ":
            line = "- " + line[2:]
        lines.append(line)
    return "\n".join(lines)


class ReportExporter:
    """Turns reports into downloadable PDF or HTML files and tracks export state."""

    def __init__(
        self,
        notifications: NotificationQueue,
        primary: Optional[ReportPDFRenderer] = None,
        fallback: Optional[TextPDFRenderer] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.notifications = notifications
        self.primary = primary or ReportPDFRenderer()
        self.fallback = fallback or TextPDFRenderer(settings.PDF_FALLBACK_LINES_PER_PAGE)
        self.timeout_seconds = settings.PDF_EXPORT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self.state = ExportState.IDLE
        self.exporting = False
        self._run_id = 0

    # --- PDF ---

    async def export_pdf(
        self,
        report: AstrologyReport,
        chart: Optional[BirthChart] = None,
        options: Optional[ExportOptions] = None,
    ) -> ExportedFile:
        options = options or ExportOptions()
        filename = safe_filename(report.title, "pdf", options.file_name)
        return await self._run_with_watchdog(
            lambda run_id: self._render_pdf(
                run_id,
                lambda: self.primary.render(report, chart, options),
                lambda: self.fallback.render(report.title, plain_text(report.content)),
                filename,
            ),
            description=report.title,
        )

    async def export_many_pdf(
        self,
        items: Sequence[Tuple[AstrologyReport, Optional[BirthChart]]],
        options: Optional[ExportOptions] = None,
    ) -> ExportedFile:
        """One PDF with every report starting on its own page."""
        if not items:
            raise ExportError("No reports selected for export")
        options = options or ExportOptions()
        filename = safe_filename(BATCH_TITLE, "pdf", options.file_name)
        return await self._run_with_watchdog(
            lambda run_id: self._render_pdf(
                run_id,
                lambda: self.primary.render_many(items, options, title=BATCH_TITLE),
                lambda: self.fallback.render_many(
                    [(report.title, plain_text(report.content)) for report, _ in items],
                    document_title=BATCH_TITLE,
                ),
                filename,
            ),
            description=f"{len(items)} reports",
        )

    def _set_state(self, run_id: int, state: ExportState):
        # a timed-out worker must not move the state of a later export
        if run_id == self._run_id and self.exporting:
            self.state = state

    def _render_pdf(
        self,
        run_id: int,
        render_primary: Callable[[], bytes],
        render_fallback: Callable[[], bytes],
        filename: str,
    ) -> ExportedFile:
        self._set_state(run_id, ExportState.RENDERING)
        try:
            with OperationTimer(logger, "pdf_render", export=filename, path="primary"):
                content = render_primary()
            return ExportedFile(filename=filename, media_type=PDF_MEDIA_TYPE, content=content)
        except Exception:
            logger.info(f"Falling back to text-only PDF for {filename}")

        self._set_state(run_id, ExportState.FALLBACK)
        with OperationTimer(logger, "pdf_render", export=filename, path="fallback"):
            content = render_fallback()
        return ExportedFile(filename=filename, media_type=PDF_MEDIA_TYPE, content=content, used_fallback=True)

    async def _run_with_watchdog(self, work: Callable[[int], ExportedFile], description: str) -> ExportedFile:
        self._run_id += 1
        run_id = self._run_id
        self.exporting = True
        self.state = ExportState.CAPTURING

        task = asyncio.ensure_future(asyncio.to_thread(work, run_id))
        done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)

        if not done:
            task.add_done_callback(self._discard_late_result)
            self._reset(run_id)
            message = (
                f"PDF generation timed out after {self.timeout_seconds:g} seconds. "
                "Please try again or export as HTML."
            )
            logger.error(f"PDF export watchdog fired for {description}")
            self.notifications.error(message)
            raise ExportTimeout(message)

        try:
            result = task.result()
        except Exception as e:
            log_error(logger, e, context={"export": description})
            self.notifications.error(f"Failed to generate PDF: {str(e)}")
            raise ExportError(f"Failed to generate PDF: {str(e)}") from e
        finally:
            self._reset(run_id)

        if result.used_fallback:
            self.notifications.info("PDF generated using simplified format")
        self.notifications.success("PDF downloaded successfully")
        return result

    def _reset(self, run_id: int):
        if run_id == self._run_id:
            self.exporting = False
            self.state = ExportState.IDLE

    @staticmethod
    def _discard_late_result(task: asyncio.Future):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Late PDF export failed after timeout: {str(error)}")
        else:
            logger.info("Late PDF export finished after timeout; result discarded")

    # --- HTML ---

    def export_html(
        self,
        report: AstrologyReport,
        chart: Optional[BirthChart] = None,
        options: Optional[ExportOptions] = None,
        legacy: bool = False,
    ) -> ExportedFile:
        options = options or ExportOptions()
        try:
            document = build_report_html(report, chart, options, legacy=legacy)
        except Exception as e:
            log_error(logger, e, context={"export": report.title, "format": "html"})
            self.notifications.error(f"Failed to export HTML: {str(e)}")
            raise ExportError(f"Failed to export HTML: {str(e)}") from e
        self.notifications.success("HTML report downloaded")
        return ExportedFile(
            filename=safe_filename(report.title, "html", options.file_name),
            media_type=HTML_MEDIA_TYPE,
            content=document.encode("utf-8"),
        )
