import asyncio
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from journeyplanner.adapters import enhanced_trip_plan, routes_at_stop, smart_trip_plan, transit_routes
from journeyplanner.config import PlannerConfig
from journeyplanner.models import (
    EnhancedTripPlan,
    LocationPoint,
    OptimizationPreference,
    PlanOptions,
    PlanResult,
    ScheduleStatus,
    Stop,
    StopRouteDepartures,
)
from journeyplanner.planner import resolve_filter_time
from journeyplanner.schedule_index import ScheduleIndex
from journeyplanner.schedule_provider import ScheduleFetchTimeout, ScheduleUnavailable

logger = logging.getLogger("journeyplanner.routes")

router = APIRouter()


def _get_state():
    from journeyplanner.main import app_state
    return app_state


def _config() -> PlannerConfig:
    return _get_state().get("planner_config") or PlannerConfig()


async def _get_index() -> ScheduleIndex:
    store = _get_state().get("store")
    if store is None:
        raise HTTPException(status_code=503, detail="Schedule store not initialized")
    try:
        return await store.get_index()
    except ScheduleFetchTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    except ScheduleUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


def _options(
    departure_time: str,
    departure_date: Optional[date],
    max_walking_distance: int,
    max_transfers: int,
    preference: OptimizationPreference,
) -> PlanOptions:
    try:
        return PlanOptions(
            departure_time=departure_time,
            departure_date=departure_date,
            max_walking_distance=max_walking_distance,
            max_transfers=max_transfers,
            preference=preference,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/health")
async def health():
    return {"status": "ok", "service": "Journey Planner API"}


@router.get("/schedule/status", response_model=ScheduleStatus)
async def schedule_status():
    """Whether a schedule is loaded, its version and table sizes."""
    store = _get_state().get("store")
    if store is None:
        return ScheduleStatus(loaded=False)
    return store.status()


@router.get("/plan", response_model=PlanResult)
async def plan(
    origin: str = Query(..., description="Origin stop_id"),
    destination: str = Query(..., description="Destination stop_id"),
    departure_time: str = Query("now", description="'now', 'all_day' or HH:MM"),
    service_date: Optional[date] = Query(None, alias="date", description="Service date, YYYY-MM-DD"),
    max_walking_distance: int = Query(1000, ge=0),
    max_transfers: int = Query(1, ge=0),
    preference: OptimizationPreference = Query(OptimizationPreference.BALANCED),
):
    """Ranked journeys between two stops."""
    index = await _get_index()
    options = _options(departure_time, service_date, max_walking_distance, max_transfers, preference)
    try:
        return await asyncio.to_thread(
            smart_trip_plan, index, Stop(stop_id=origin), Stop(stop_id=destination), options, _config()
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/plan/points", response_model=PlanResult)
async def plan_points(
    origin_lat: float = Query(..., ge=-90, le=90),
    origin_lon: float = Query(..., ge=-180, le=180),
    destination_lat: float = Query(..., ge=-90, le=90),
    destination_lon: float = Query(..., ge=-180, le=180),
    departure_time: str = Query("now"),
    service_date: Optional[date] = Query(None, alias="date"),
    max_walking_distance: int = Query(1000, ge=0),
    max_transfers: int = Query(1, ge=0),
    preference: OptimizationPreference = Query(OptimizationPreference.BALANCED),
):
    """Ranked journeys between two coordinates."""
    index = await _get_index()
    options = _options(departure_time, service_date, max_walking_distance, max_transfers, preference)
    origin = LocationPoint(lat=origin_lat, lon=origin_lon, name="Origin")
    destination = LocationPoint(lat=destination_lat, lon=destination_lon, name="Destination")
    try:
        return await asyncio.to_thread(transit_routes, index, origin, destination, options, _config())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/plan/enhanced", response_model=EnhancedTripPlan)
async def plan_enhanced(
    origin: str = Query(...),
    destination: str = Query(...),
    departure_time: str = Query("now"),
    service_date: Optional[date] = Query(None, alias="date"),
    max_transfers: int = Query(1, ge=0),
):
    """Direct and transfer journeys between two exact stops, plus the routes at each end."""
    index = await _get_index()
    options = _options(departure_time, service_date, 0, max_transfers, OptimizationPreference.BALANCED)
    try:
        return await asyncio.to_thread(enhanced_trip_plan, index, origin, destination, options, _config())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/stops/{stop_id}/routes", response_model=list[StopRouteDepartures])
async def stop_routes(
    stop_id: str,
    departure_time: str = Query("all_day"),
    limit: int = Query(3, ge=1, le=20),
):
    """Routes serving a stop with their next departures."""
    index = await _get_index()
    if stop_id not in index.stop_by_id:
        raise HTTPException(status_code=404, detail=f"Stop '{stop_id}' not found")
    try:
        filter_time = resolve_filter_time(departure_time, None, datetime.now())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return await asyncio.to_thread(routes_at_stop, index, stop_id, filter_time, limit=limit)
