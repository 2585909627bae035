"""The three planner call sites as thin wrappers over JourneyPlanner.

Each one only picks fan-out constants and an output shape:

- smart_trip_plan: stop to stop, nearby candidates, the planner defaults.
- enhanced_trip_plan: exact stops only, direct and transfer journeys kept
  apart, plus what runs at each end.
- transit_routes: free coordinates, tighter fan-out, five results.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from journeyplanner.config import PlannerConfig
from journeyplanner.gtfs_parser import format_clock, parse_gtfs_time
from journeyplanner.models import (
    CandidateStop,
    EnhancedTripPlan,
    LocationPoint,
    PlanOptions,
    PlanResult,
    Stop,
    StopRouteDepartures,
)
from journeyplanner.planner import MSG_NO_JOURNEY, MSG_SCHEDULE_NOT_LOADED, JourneyPlanner
from journeyplanner.schedule_index import ScheduleIndex
from journeyplanner.scoring import rank_journeys, weights_for

TRANSIT_ROUTER_OVERRIDES = {
    "candidate_limit": 5,
    "transfer_candidate_limit": 3,
    "max_results": 5,
}


def smart_trip_plan(
    index: ScheduleIndex,
    origin: Stop,
    destination: Stop,
    options: Optional[PlanOptions] = None,
    config: Optional[PlannerConfig] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> PlanResult:
    return JourneyPlanner(index, config, clock).plan(origin, destination, options)


def transit_routes(
    index: ScheduleIndex,
    origin: LocationPoint,
    destination: LocationPoint,
    options: Optional[PlanOptions] = None,
    config: Optional[PlannerConfig] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> PlanResult:
    config = replace(config or PlannerConfig(), **TRANSIT_ROUTER_OVERRIDES)
    return JourneyPlanner(index, config, clock).plan_between_points(origin, destination, options)


def routes_at_stop(
    index: ScheduleIndex,
    stop_id: str,
    filter_time: str = "00:00:00",
    limit: int = 3,
    allowed_trips: Optional[frozenset] = None,
) -> list[StopRouteDepartures]:
    """Routes serving a stop with their next departures (HH:MM) from filter_time.

    A trip's last stop is not a boarding point, so it contributes no departure.
    Routes with nothing left today are still listed, with no departures.
    """
    filter_seconds = parse_gtfs_time(filter_time) or 0
    upcoming: dict[str, list[tuple[int, str]]] = {}
    for trip_id, pos in index.visits_by_stop.get(stop_id, ()):
        if allowed_trips is not None and trip_id not in allowed_trips:
            continue
        if pos == len(index.stop_times_by_trip[trip_id]) - 1:
            continue
        departure = index.boarding_seconds(trip_id, pos)
        if departure is None or departure < filter_seconds:
            continue
        upcoming.setdefault(index.trip_route[trip_id], []).append((departure, trip_id))

    results = []
    for route in index.routes_serving(stop_id):
        deps = sorted(upcoming.get(route.route_id, []))[:limit]
        headsign = index.trip_by_id[deps[0][1]].trip_headsign if deps else None
        results.append(StopRouteDepartures(
            route=route,
            headsign=headsign,
            departures=[format_clock(seconds) for seconds, _ in deps],
        ))
    return results


def enhanced_trip_plan(
    index: ScheduleIndex,
    origin_id: str,
    destination_id: str,
    options: Optional[PlanOptions] = None,
    config: Optional[PlannerConfig] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> EnhancedTripPlan:
    """Journeys between two exact stops, with the routes serving each end.

    Transfers are only searched when no direct trip exists.
    """
    options = options or PlanOptions()
    planner = JourneyPlanner(index, config, clock)
    if index.is_empty:
        return EnhancedTripPlan(no_route_found=True, message=MSG_SCHEDULE_NOT_LOADED)

    origin = index.stop_by_id.get(origin_id)
    destination = index.stop_by_id.get(destination_id)
    if origin is None or destination is None:
        side = "Origin" if origin is None else "Destination"
        missing = origin_id if origin is None else destination_id
        return EnhancedTripPlan(no_route_found=True, message=f"{side} stop '{missing}' not found in the schedule")

    filter_time = planner.filter_time(options)
    filter_seconds = parse_gtfs_time(filter_time)
    allowed = planner.allowed_trips(options)
    weights = weights_for(options.preference, planner.config)
    origins = [CandidateStop(stop=origin)]
    destinations = [CandidateStop(stop=destination)]

    direct = rank_journeys(
        planner.direct_journeys(origins, destinations, filter_seconds, allowed),
        weights,
        planner.config.max_results,
    )
    transfers = []
    if not direct and options.max_transfers >= 1:
        transfers = rank_journeys(
            planner.transfer_journeys(origins, destinations, filter_seconds, allowed),
            weights,
            planner.config.max_results,
        )

    found = bool(direct or transfers)
    return EnhancedTripPlan(
        direct_journeys=direct,
        transfer_journeys=transfers,
        origin_routes=routes_at_stop(index, origin_id, filter_time, allowed_trips=allowed),
        destination_routes=routes_at_stop(index, destination_id, filter_time, allowed_trips=allowed),
        no_direct_connection=not direct,
        no_route_found=not found,
        message=None if found else MSG_NO_JOURNEY,
    )
