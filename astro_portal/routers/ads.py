# astro_portal/routers/ads.py
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from datetime import datetime
from typing import List, Optional
import logging

from astro_portal.core.config import settings
from astro_portal.dependencies.admin import get_current_admin
from astro_portal.dependencies.auth import get_optional_user
from astro_portal.dependencies.services import get_ad_banner_service, get_preferences_service
from astro_portal.models.ads import AdBanner, AdBannerFormData, AdBannerUpdate, AdStats, AdZone, DateRange
from astro_portal.schemas.ads import TrackEventRequest
from astro_portal.services.ad_banner_service import AdBannerService
from astro_portal.services.preferences_service import PreferencesService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ads", tags=["Ads"])

# Public placement endpoints

@router.get("/zones", response_model=List[AdZone])
async def list_ad_zones(service: AdBannerService = Depends(get_ad_banner_service)):
    return await service.get_ad_zones()

@router.get("/zones/{zone}", response_model=List[AdBanner])
async def get_zone_ads(
    zone: str,
    limit: Optional[int] = Query(None, ge=1, le=50),
    service: AdBannerService = Depends(get_ad_banner_service),
    preferences: PreferencesService = Depends(get_preferences_service)
):
    """Active ads for a placement, minus the ones the caller dismissed."""
    limit = limit or settings.DEFAULT_ADS_PER_ZONE
    dismissed = set(preferences.get_dismissed_ads())
    # over-fetch so dismissed banners do not eat into the requested count
    ads = await service.get_active_ads_for_zone(zone, limit + len(dismissed))
    return [ad for ad in ads if ad.id not in dismissed][:limit]

@router.post("/track", status_code=status.HTTP_202_ACCEPTED)
async def track_ad_event(
    event: TrackEventRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    user: Optional[dict] = Depends(get_optional_user),
    service: AdBannerService = Depends(get_ad_banner_service)
):
    """Record a view or click after the response is sent."""
    background_tasks.add_task(
        service.track_ad_event,
        event.ad_id,
        event.event_type,
        event.zone,
        user['uid'] if user else None,
        request.headers.get("user-agent"),
    )
    return {"status": "accepted"}

# Admin endpoints

@router.get("", response_model=List[AdBanner])
async def list_ad_banners(
    zone: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    admin: dict = Depends(get_current_admin),
    service: AdBannerService = Depends(get_ad_banner_service)
):
    return await service.get_ad_banners(zone=zone, active=active, limit=limit)

@router.get("/stats", response_model=AdStats)
async def get_ad_stats(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    admin: dict = Depends(get_current_admin),
    service: AdBannerService = Depends(get_ad_banner_service)
):
    """Views, clicks and CTR, optionally limited to a date range."""
    if (start is None) != (end is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Both start and end are required for a date range"
        )
    date_range = DateRange(start=start, end=end) if start and end else None
    return await service.get_ad_stats(date_range)

@router.post("", response_model=AdBanner, status_code=status.HTTP_201_CREATED)
async def create_ad_banner(
    ad_data: AdBannerFormData,
    admin: dict = Depends(get_current_admin),
    service: AdBannerService = Depends(get_ad_banner_service)
):
    banner = await service.create_ad_banner(ad_data)
    if not banner:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create ad banner"
        )
    return banner

@router.put("/{ad_id}", response_model=AdBanner)
async def update_ad_banner(
    ad_id: str,
    updates: AdBannerUpdate,
    admin: dict = Depends(get_current_admin),
    service: AdBannerService = Depends(get_ad_banner_service)
):
    banner = await service.update_ad_banner(ad_id, updates)
    if not banner:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ad banner not found or could not be updated"
        )
    return banner

@router.delete("/{ad_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ad_banner(
    ad_id: str,
    admin: dict = Depends(get_current_admin),
    service: AdBannerService = Depends(get_ad_banner_service)
):
    if not await service.delete_ad_banner(ad_id):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to delete ad banner"
        )
