# astro_portal/routers/reports.py
from fastapi import APIRouter, Depends, Query, Response, status
from typing import List, Optional
import logging

from astro_portal.dependencies.auth import get_current_user
from astro_portal.dependencies.services import get_astrology_store
from astro_portal.models.astrology import AstrologyReport
from astro_portal.schemas.chart import NatalReportCreate, ReportCreate, TemplateReportCreate
from astro_portal.schemas.export import BatchExportRequest, ExportedFile, ExportOptions
from astro_portal.services.astrology_store import AstrologyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])

def _file_response(exported: ExportedFile) -> Response:
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{exported.filename}"',
            "X-Export-Fallback": "true" if exported.used_fallback else "false",
        },
    )

def _export_options(
    include_header: bool = Query(True),
    include_birth_info: bool = Query(True),
    include_metadata: bool = Query(True),
    file_name: Optional[str] = Query(None, description="Download name, extension added automatically"),
) -> ExportOptions:
    return ExportOptions(
        include_header=include_header,
        include_birth_info=include_birth_info,
        include_metadata=include_metadata,
        file_name=file_name,
    )

@router.get("", response_model=List[AstrologyReport])
async def list_reports(
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Get all reports of the current user, newest first."""
    return await store.fetch_reports(current_user['uid'])

@router.post("", response_model=AstrologyReport, status_code=status.HTTP_201_CREATED)
async def create_report(
    request: ReportCreate,
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Create a report of any type; natal and vedic types get generated content."""
    return await store.create_report(request.birth_chart_id, request.report_type, request.title, current_user['uid'])

@router.post("/natal", response_model=AstrologyReport, status_code=status.HTTP_201_CREATED)
async def create_natal_report(
    request: NatalReportCreate,
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    return await store.create_natal_chart_report(request.birth_chart_id, current_user['uid'], request.is_premium)

@router.post("/vedic", response_model=AstrologyReport, status_code=status.HTTP_201_CREATED)
async def create_vedic_report(
    request: NatalReportCreate,
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    return await store.create_vedic_report(request.birth_chart_id, current_user['uid'], request.is_premium)

@router.post("/from-template", response_model=AstrologyReport, status_code=status.HTTP_201_CREATED)
async def create_report_from_template(
    request: TemplateReportCreate,
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Create a report whose sections follow a template."""
    return await store.create_report_from_template(
        request.template_id, request.birth_chart_id, current_user['uid'], request.options
    )

@router.post("/export")
async def export_reports(
    request: BatchExportRequest,
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Export several reports into one PDF."""
    exported = await store.export_reports_to_pdf(request.report_ids, request.options)
    return _file_response(exported)

@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: str,
    store: AstrologyStore = Depends(get_astrology_store)
):
    await store.delete_report(report_id)

@router.get("/{report_id}/pdf")
async def export_report_pdf(
    report_id: str,
    options: ExportOptions = Depends(_export_options),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """
    Download a report as PDF.

    The `X-Export-Fallback` header tells whether the simplified text layout
    was used because the styled renderer failed.
    """
    exported = await store.export_report_to_pdf(report_id, options)
    return _file_response(exported)

@router.get("/{report_id}/html")
async def export_report_html(
    report_id: str,
    legacy: bool = Query(False, description="Use the dark section-card layout"),
    options: ExportOptions = Depends(_export_options),
    store: AstrologyStore = Depends(get_astrology_store)
):
    exported = await store.export_report_to_html(report_id, legacy=legacy, options=options)
    return _file_response(exported)
