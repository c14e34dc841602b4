# astro_portal/routers/charts.py
from fastapi import APIRouter, Depends, status
from typing import List, Optional
import logging

from astro_portal.dependencies.auth import get_current_user
from astro_portal.dependencies.services import get_astrology_store
from astro_portal.models.astrology import AstrologicalInterpretation, BirthChart, TransitForecast
from astro_portal.schemas.chart import BirthChartUpdate, BirthDataCreate, InterpretationCreate, TransitForecastCreate
from astro_portal.services.astrology_store import AstrologyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/charts", tags=["Charts"])

@router.get("", response_model=List[BirthChart])
async def list_birth_charts(
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Get all birth charts of the current user, newest first."""
    return await store.fetch_birth_charts(current_user['uid'])

@router.post("", response_model=BirthChart, status_code=status.HTTP_201_CREATED)
async def create_birth_chart(
    birth_data: BirthDataCreate,
    current_user: dict = Depends(get_current_user),
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Create a birth chart and make it the current chart."""
    return await store.create_birth_chart(birth_data, current_user['uid'])

@router.get("/current", response_model=Optional[BirthChart])
async def get_current_chart(store: AstrologyStore = Depends(get_astrology_store)):
    return store.state.current_chart

@router.delete("/current", status_code=status.HTTP_204_NO_CONTENT)
async def clear_current_chart(store: AstrologyStore = Depends(get_astrology_store)):
    store.set_current_chart(None)

@router.get("/{chart_id}", response_model=BirthChart)
async def get_birth_chart(
    chart_id: str,
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Get a specific chart by ID."""
    return await store.fetch_birth_chart(chart_id)

@router.put("/{chart_id}", response_model=BirthChart)
async def update_birth_chart(
    chart_id: str,
    updates: BirthChartUpdate,
    store: AstrologyStore = Depends(get_astrology_store)
):
    return await store.update_birth_chart(chart_id, updates)

@router.delete("/{chart_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_birth_chart(
    chart_id: str,
    store: AstrologyStore = Depends(get_astrology_store)
):
    await store.delete_birth_chart(chart_id)

@router.post("/{chart_id}/current", response_model=BirthChart)
async def set_current_chart(
    chart_id: str,
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Select the chart the dashboard works with."""
    chart = next((c for c in store.state.birth_charts if c.id == chart_id), None)
    if chart is None:
        chart = await store.fetch_birth_chart(chart_id)
    store.set_current_chart(chart)
    return chart


# Interpretations and transit forecasts

@router.get("/{chart_id}/interpretations", response_model=List[AstrologicalInterpretation])
async def list_interpretations(
    chart_id: str,
    store: AstrologyStore = Depends(get_astrology_store)
):
    return await store.fetch_interpretations(chart_id)

@router.post("/{chart_id}/interpretations", response_model=AstrologicalInterpretation, status_code=status.HTTP_201_CREATED)
async def create_interpretation(
    chart_id: str,
    request: InterpretationCreate,
    store: AstrologyStore = Depends(get_astrology_store)
):
    return await store.generate_interpretation(chart_id, request.interpretation_type)

@router.get("/{chart_id}/forecasts", response_model=List[TransitForecast])
async def list_transit_forecasts(
    chart_id: str,
    store: AstrologyStore = Depends(get_astrology_store)
):
    """Transit forecasts of a chart, latest forecast date first."""
    return await store.fetch_transit_forecasts(chart_id)

@router.post("/{chart_id}/forecasts", response_model=TransitForecast, status_code=status.HTTP_201_CREATED)
async def create_transit_forecast(
    chart_id: str,
    request: TransitForecastCreate,
    store: AstrologyStore = Depends(get_astrology_store)
):
    return await store.generate_transit_forecast(chart_id, request.forecast_date.isoformat(), request.period)
