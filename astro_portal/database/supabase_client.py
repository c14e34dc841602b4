# astro_portal/database/supabase_client.py
import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError
from sqlmodel import SQLModel
from supabase import AsyncClient, acreate_client

from astro_portal.core.config import settings
from astro_portal.core.exceptions import BackendError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SQLModel)

# Table and RPC names exposed by the Supabase project
BIRTH_CHARTS = "birth_charts"
ASTROLOGY_REPORTS = "astrology_reports"
COMPATIBILITY_REPORTS = "compatibility_reports"
REPORT_TEMPLATES = "report_templates"
TEMPLATE_CATEGORIES = "template_categories"
USER_SUBSCRIPTIONS = "user_subscriptions"
ASTROLOGICAL_INTERPRETATIONS = "astrological_interpretations"
DAILY_HOROSCOPES = "daily_horoscopes"
TRANSIT_FORECASTS = "transit_forecasts"
AD_BANNERS = "ad_banners"
AD_ZONES = "ad_zones"
AD_ANALYTICS = "ad_analytics"
RPC_ACTIVE_ADS_FOR_ZONE = "get_active_ads_for_zone"
RPC_TRACK_AD_EVENT = "track_ad_event"


class SupabaseManager:
    """Owns the application's async Supabase client."""

    def __init__(self):
        self.client: Optional[AsyncClient] = None

    async def init(self) -> AsyncClient:
        if self.client is None:
            if not settings.SUPABASE_KEY:
                logger.warning("SUPABASE_KEY is empty; requests will be rejected by row-level security")
            self.client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
            logger.info(f"Supabase client initialized for {settings.SUPABASE_URL}")
        return self.client

    async def close(self):
        if self.client is not None:
            try:
                await self.client.postgrest.aclose()
            except Exception as e:
                logger.error(f"Error closing Supabase client: {str(e)}")
            self.client = None
            logger.info("Supabase client closed")


supabase_manager = SupabaseManager()


async def get_supabase() -> AsyncClient:
    """Dependency returning the shared Supabase client."""
    return await supabase_manager.init()


async def execute(query, action: str) -> Any:
    """
    Run a postgrest query builder and return its response.

    Any transport or PostgREST error is logged and re-raised as BackendError
    carrying the backend's message.
    """
    try:
        return await query.execute()
    except APIError as e:
        message = e.message or str(e)
        logger.error(f"Supabase error while {action}: {message}")
        raise BackendError(message) from e
    except httpx.HTTPError as e:
        logger.error(f"Network error while {action}: {str(e)}")
        raise BackendError(f"Network error while {action}") from e


def validate_row(model: Type[M], row: Dict[str, Any]) -> M:
    """Validate a Supabase row into `model`; a row of the wrong shape is a BackendError."""
    try:
        return model.model_validate(row)
    except ValidationError as e:
        logger.error(f"Unexpected {model.__name__} row from backend: {str(e)}")
        raise BackendError(f"Unexpected {model.__name__} row from backend: {e.error_count()} invalid fields") from e
