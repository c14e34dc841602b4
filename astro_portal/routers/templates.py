# astro_portal/routers/templates.py
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from astro_portal.dependencies.services import get_astrology_store
from astro_portal.models.astrology import ReportTemplate, TemplateCategory
from astro_portal.services.astrology_store import AstrologyStore

router = APIRouter(prefix="/templates", tags=["Templates"])

@router.get("", response_model=List[ReportTemplate])
async def list_templates(
    report_type: Optional[str] = Query(None, description="Only templates for this report type"),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Active report templates, by name."""
    return await store.fetch_templates(report_type)

@router.get("/categories", response_model=List[TemplateCategory])
async def list_template_categories(store: AstrologyStore = Depends(get_astrology_store)):
    return await store.fetch_template_categories()
