# astro_portal/routers/compatibility.py
from fastapi import APIRouter, Depends, status
from typing import List

from astro_portal.dependencies.auth import get_current_user
from astro_portal.dependencies.services import get_astrology_store
from astro_portal.models.astrology import CompatibilityReport
from astro_portal.schemas.chart import CompatibilityCreate
from astro_portal.services.astrology_store import AstrologyStore

router = APIRouter(prefix="/compatibility", tags=["Compatibility"])

@router.get("", response_model=List[CompatibilityReport])
async def list_compatibility_reports(
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    return await store.fetch_compatibility_reports(current_user['uid'])

@router.post("", response_model=CompatibilityReport, status_code=status.HTTP_201_CREATED)
async def create_compatibility_report(
    request: CompatibilityCreate,
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Compare two of the user's birth charts."""
    return await store.create_compatibility_report(request.chart1_id, request.chart2_id, current_user['uid'])
