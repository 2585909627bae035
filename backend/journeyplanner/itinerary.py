"""Leg construction and Journey totals shared by the direct and transfer searches."""

from typing import Optional

from journeyplanner.config import PlannerConfig
from journeyplanner.geo import walking_minutes
from journeyplanner.gtfs_parser import format_gtfs_time, parse_gtfs_time
from journeyplanner.models import (
    CandidateStop,
    Journey,
    LocationPoint,
    Stop,
    TransitLeg,
    WalkLeg,
)
from journeyplanner.schedule_index import ScheduleIndex


def stop_point(stop: Stop) -> LocationPoint:
    return LocationPoint(lat=stop.stop_lat, lon=stop.stop_lon, name=stop.stop_name)


def walk_leg(start: LocationPoint, end: LocationPoint, meters: float) -> WalkLeg:
    meters = max(0.0, meters)
    return WalkLeg(
        from_location=start,
        to_location=end,
        meters=round(meters, 1),
        minutes=walking_minutes(meters),
    )


def approach_leg(candidate: CandidateStop, config: PlannerConfig) -> Optional[WalkLeg]:
    """Walk from the rider's point to the boarding stop; short walks are dropped as noise."""
    if candidate.anchor is None or candidate.distance_meters <= config.walk_suppression_m:
        return None
    return walk_leg(candidate.anchor, stop_point(candidate.stop), candidate.distance_meters)


def egress_leg(candidate: CandidateStop, config: PlannerConfig) -> Optional[WalkLeg]:
    if candidate.anchor is None or candidate.distance_meters <= config.walk_suppression_m:
        return None
    return walk_leg(stop_point(candidate.stop), candidate.anchor, candidate.distance_meters)


def transit_leg(index: ScheduleIndex, trip_id: str, board_pos: int, alight_pos: int) -> TransitLeg:
    rows = index.stop_times_by_trip[trip_id]
    trip = index.trip_by_id[trip_id]
    return TransitLeg(
        route=index.route_for(trip.route_id),
        from_stop=index.stop_by_id[rows[board_pos].stop_id],
        to_stop=index.stop_by_id[rows[alight_pos].stop_id],
        trip_id=trip_id,
        departure_time=format_gtfs_time(index.boarding_seconds(trip_id, board_pos)),
        arrival_time=format_gtfs_time(index.alighting_seconds(trip_id, alight_pos)),
        stop_count=alight_pos - board_pos,
        headsign=trip.trip_headsign,
    )


def assemble_journey(legs: list) -> Journey:
    """Compute Journey totals from its legs.

    Bus minutes span first boarding to last alighting, so any wait at a
    transfer is included; a walk between the two transit legs is counted as
    walking instead. Score is left at 0 for the scorer to fill in.
    """
    positions = [i for i, leg in enumerate(legs) if isinstance(leg, TransitLeg)]
    transit = [legs[i] for i in positions]
    walking = sum(leg.minutes for leg in legs if isinstance(leg, WalkLeg))

    departure = parse_gtfs_time(transit[0].departure_time)
    arrival = parse_gtfs_time(transit[-1].arrival_time)
    transfer_walk = sum(leg.minutes for leg in legs[positions[0]:positions[-1]] if isinstance(leg, WalkLeg))

    bus = max(0, arrival // 60 - departure // 60 - transfer_walk)
    return Journey(
        legs=legs,
        total_duration_minutes=walking + bus,
        total_walking_minutes=walking,
        total_bus_minutes=bus,
        transfer_count=len(transit) - 1,
        departure_time=transit[0].departure_time,
        arrival_time=transit[-1].arrival_time,
    )


def build_journey(
    index: ScheduleIndex,
    config: PlannerConfig,
    origin: CandidateStop,
    destination: CandidateStop,
    rides: list[tuple[str, int, int]],
    transfer_walk: Optional[WalkLeg] = None,
) -> Journey:
    """Walk in, ride each (trip_id, board_pos, alight_pos), walk out."""
    legs = []
    leading = approach_leg(origin, config)
    if leading:
        legs.append(leading)
    for i, (trip_id, board_pos, alight_pos) in enumerate(rides):
        if i > 0 and transfer_walk is not None:
            legs.append(transfer_walk)
        legs.append(transit_leg(index, trip_id, board_pos, alight_pos))
    trailing = egress_leg(destination, config)
    if trailing:
        legs.append(trailing)
    return assemble_journey(legs)
