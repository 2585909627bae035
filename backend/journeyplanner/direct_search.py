"""Single-trip journeys between one boarding and one alighting candidate."""

import logging
from typing import Optional

from journeyplanner.config import PlannerConfig
from journeyplanner.itinerary import build_journey
from journeyplanner.models import CandidateStop, Journey
from journeyplanner.schedule_index import ScheduleIndex

logger = logging.getLogger("journeyplanner.direct")


def find_direct(
    origin: CandidateStop,
    destination: CandidateStop,
    index: ScheduleIndex,
    filter_seconds: int,
    config: PlannerConfig,
    allowed_trips: Optional[frozenset] = None,
) -> list[Journey]:
    """Trips that visit the origin stop and later the destination stop.

    Departures earlier than filter_seconds are rejected. Only the next
    `config.departures_per_route` departures of each route are kept.
    """
    origin_id = origin.stop.stop_id
    dest_id = destination.stop.stop_id
    if origin_id == dest_id:
        return []

    dest_positions: dict[str, list[int]] = {}
    for trip_id, pos in index.visits_by_stop.get(dest_id, ()):
        dest_positions.setdefault(trip_id, []).append(pos)

    # trip_id -> (departure, board_pos, alight_pos); a looping trip keeps its shortest ride
    rides: dict[str, tuple[int, int, int]] = {}
    for trip_id, board_pos in index.visits_by_stop.get(origin_id, ()):
        if allowed_trips is not None and trip_id not in allowed_trips:
            continue
        alight_pos = next((p for p in dest_positions.get(trip_id, ()) if p > board_pos), None)
        if alight_pos is None:
            continue

        departure = index.boarding_seconds(trip_id, board_pos)
        arrival = index.alighting_seconds(trip_id, alight_pos)
        if departure is None or arrival is None or arrival < departure:
            continue
        if departure < filter_seconds:
            continue
        rides[trip_id] = (departure, board_pos, alight_pos)

    per_route: dict[str, int] = {}
    journeys = []
    for trip_id, (departure, board_pos, alight_pos) in sorted(rides.items(), key=lambda kv: (kv[1][0], kv[0])):
        route_id = index.trip_route[trip_id]
        if per_route.get(route_id, 0) >= config.departures_per_route:
            continue
        per_route[route_id] = per_route.get(route_id, 0) + 1
        journeys.append(build_journey(index, config, origin, destination, [(trip_id, board_pos, alight_pos)]))

    if journeys:
        logger.debug(f"Direct {origin_id}->{dest_id}: {len(journeys)} journeys")
    return journeys
