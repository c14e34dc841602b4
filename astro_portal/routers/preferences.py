# astro_portal/routers/preferences.py
from fastapi import APIRouter, Depends

from astro_portal.dependencies.auth import get_current_user
from astro_portal.dependencies.services import get_preferences_service
from astro_portal.schemas.preferences import AccessibilitySettings, DismissedAds, OnboardingStatus
from astro_portal.services.preferences_service import PreferencesService

router = APIRouter(prefix="/preferences", tags=["Preferences"])

@router.get("/dismissed-ads", response_model=DismissedAds)
async def get_dismissed_ads(preferences: PreferencesService = Depends(get_preferences_service)):
    return DismissedAds(ad_ids=preferences.get_dismissed_ads())

@router.post("/dismissed-ads/{ad_id}", response_model=DismissedAds)
async def dismiss_ad(ad_id: str, preferences: PreferencesService = Depends(get_preferences_service)):
    """Hide an ad from this profile for good."""
    return DismissedAds(ad_ids=preferences.dismiss_ad(ad_id))

@router.get("/accessibility", response_model=AccessibilitySettings, response_model_by_alias=True)
async def get_accessibility_settings(preferences: PreferencesService = Depends(get_preferences_service)):
    return preferences.get_accessibility_settings()

@router.put("/accessibility", response_model=AccessibilitySettings, response_model_by_alias=True)
async def save_accessibility_settings(
    accessibility: AccessibilitySettings,
    preferences: PreferencesService = Depends(get_preferences_service)
):
    return preferences.save_accessibility_settings(accessibility)

@router.get("/onboarding", response_model=OnboardingStatus)
async def get_onboarding_status(
    current_user: dict = Depends(get_current_user),
    preferences: PreferencesService = Depends(get_preferences_service)
):
    user_id = current_user['uid']
    return OnboardingStatus(user_id=user_id, seen=preferences.has_seen_onboarding(user_id))

@router.post("/onboarding", response_model=OnboardingStatus)
async def mark_onboarding_seen(
    current_user: dict = Depends(get_current_user),
    preferences: PreferencesService = Depends(get_preferences_service)
):
    user_id = current_user['uid']
    preferences.mark_onboarding_seen(user_id)
    return OnboardingStatus(user_id=user_id, seen=True)
