# astro_portal/routers/session.py
from fastapi import APIRouter, Depends, status
from typing import Any, Dict, List

from astro_portal.dependencies.auth import get_current_user
from astro_portal.dependencies.services import get_astrology_store, get_store_registry
from astro_portal.models.astrology import AstrologyState
from astro_portal.schemas.chart import StateSnapshot
from astro_portal.services.astrology_store import AstrologyStore, StoreRegistry
from astro_portal.services.notifications import Notification

router = APIRouter(prefix="/session", tags=["Session"])

_ERROR_FIELDS = ("birth_charts_error", "reports_error", "compatibility_error", "templates_error", "insights_error", "pdf_error", "error")
_FLAG_FIELDS = ("birth_charts_loading", "reports_loading", "compatibility_loading", "templates_loading", "insights_loading", "pdf_exporting")

@router.get("/state", response_model=AstrologyState)
async def get_state(store: AstrologyStore = Depends(get_astrology_store)):
    """Full copy of the user's store state."""
    return store.snapshot()

@router.get("/status", response_model=StateSnapshot)
async def get_status(store: AstrologyStore = Depends(get_astrology_store)):
    state = store.snapshot()
    errors = []
    for field in _ERROR_FIELDS:
        message = getattr(state, field)
        if message and message not in errors:
            errors.append(message)
    return StateSnapshot(
        birth_charts=len(state.birth_charts),
        reports=len(state.reports),
        compatibility_reports=len(state.compatibility_reports),
        current_chart_id=state.current_chart.id if state.current_chart else None,
        flags={field: getattr(state, field) for field in _FLAG_FIELDS},
        errors=errors,
    )

@router.post("/clear-error", status_code=status.HTTP_204_NO_CONTENT)
async def clear_error(store: AstrologyStore = Depends(get_astrology_store)):
    store.clear_error()

@router.get("/notifications", response_model=List[Notification])
async def drain_notifications(store: AstrologyStore = Depends(get_astrology_store)):
    """Pending toast messages; reading them empties the queue."""
    return store.notifications.drain()

@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    current_user: Dict[str, Any] = Depends(get_current_user),
    registry: StoreRegistry = Depends(get_store_registry)
):
    """Drop the user's in-memory store (sign-out)."""
    registry.discard(current_user["uid"])
