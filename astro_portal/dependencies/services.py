from fastapi import Depends
from typing import Any, Dict, Optional

from supabase import AsyncClient

from astro_portal.database.supabase_client import get_supabase
from astro_portal.dependencies.auth import get_current_user, get_optional_user
from astro_portal.services.ad_banner_service import AdBannerService
from astro_portal.services.astrology_store import AstrologyStore, StoreRegistry
from astro_portal.services.chat_service import ChatService
from astro_portal.services.preferences_service import DEFAULT_PROFILE, PreferencesService

# Application-wide instances, created on first request
_ad_banner_service: Optional[AdBannerService] = None
_store_registry: Optional[StoreRegistry] = None


async def get_ad_banner_service(client: AsyncClient = Depends(get_supabase)) -> AdBannerService:
    global _ad_banner_service
    if _ad_banner_service is None:
        _ad_banner_service = AdBannerService(client)
    return _ad_banner_service


async def get_store_registry(client: AsyncClient = Depends(get_supabase)) -> StoreRegistry:
    global _store_registry
    if _store_registry is None:
        _store_registry = StoreRegistry(lambda user_id: AstrologyStore(client, user_id=user_id))
    return _store_registry


async def get_astrology_store(
    current_user: Dict[str, Any] = Depends(get_current_user),
    registry: StoreRegistry = Depends(get_store_registry),
) -> AstrologyStore:
    """The signed-in user's store."""
    return registry.get(current_user["uid"])


async def get_chat_service(client: AsyncClient = Depends(get_supabase)) -> ChatService:
    return ChatService(client)


async def get_preferences_service(
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> PreferencesService:
    return PreferencesService(profile=user["uid"] if user else DEFAULT_PROFILE)


def reset_service_instances():
    """Drop the cached service instances (used on shutdown and in tests)."""
    global _ad_banner_service, _store_registry
    _ad_banner_service = None
    _store_registry = None
