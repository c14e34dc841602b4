# astro_portal/routers/horoscopes.py
from fastapi import APIRouter, Depends, Query
from datetime import date, datetime, timezone
from typing import List, Optional
import logging

from astro_portal.dependencies.admin import get_current_admin
from astro_portal.dependencies.services import get_astrology_store
from astro_portal.models.astrology import DailyHoroscope, ZodiacSign
from astro_portal.services.astrology_store import AstrologyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/horoscopes", tags=["Horoscopes"])

def _day(day: Optional[date]) -> str:
    return (day or datetime.now(timezone.utc).date()).isoformat()

@router.get("/{zodiac_sign}", response_model=DailyHoroscope)
async def get_daily_horoscope(
    zodiac_sign: ZodiacSign,
    day: Optional[date] = Query(None, alias="date", description="Defaults to today (UTC)"),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """The stored horoscope for the day, or a generated stand-in when none exists."""
    return await store.fetch_daily_horoscope(zodiac_sign.value, _day(day))

@router.post("/generate", response_model=List[DailyHoroscope])
async def generate_daily_horoscopes(
    day: Optional[date] = Query(None, alias="date"),
    admin: dict = Depends(get_current_admin),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Write the twelve horoscopes of a day (admin only)."""
    logger.info(f"Admin {admin['uid']} generating horoscopes for {_day(day)}")
    return await store.generate_daily_horoscopes(_day(day))
