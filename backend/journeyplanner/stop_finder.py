"""Boarding/alighting candidates ranked by walking distance."""

from typing import Iterable, Optional

from journeyplanner.geo import distance_meters
from journeyplanner.models import CandidateStop, LocationPoint, Stop
from journeyplanner.schedule_index import ScheduleIndex


def find_nearby_stops(
    lat: float,
    lon: float,
    stops: Iterable[Stop],
    max_radius_meters: float = 0,
    anchor: Optional[LocationPoint] = None,
) -> list[CandidateStop]:
    """Rank stops by distance from a point.

    max_radius_meters = 0 means unlimited. Stops without coordinates are ignored.
    Ties are broken by stop_id so the order is stable across calls.
    """
    anchor = anchor or LocationPoint(lat=lat, lon=lon)
    found = []
    for stop in stops:
        if not stop.has_coordinates:
            continue
        dist = distance_meters(lat, lon, stop.stop_lat, stop.stop_lon)
        if max_radius_meters and dist > max_radius_meters:
            continue
        found.append(CandidateStop(stop=stop, distance_meters=dist, anchor=anchor))
    found.sort(key=lambda c: (c.distance_meters, c.stop.stop_id))
    return found


def candidates_near(
    index: ScheduleIndex,
    lat: float,
    lon: float,
    max_radius_meters: float = 0,
    anchor: Optional[LocationPoint] = None,
) -> list[CandidateStop]:
    """Same ranking as find_nearby_stops, computed over the index's coordinate arrays."""
    anchor = anchor or LocationPoint(lat=lat, lon=lon)
    radius = max_radius_meters if max_radius_meters else None
    return [
        CandidateStop(stop=stop, distance_meters=dist, anchor=anchor)
        for stop, dist in index.stops_within(lat, lon, radius)
    ]


def ensure_candidate(
    candidates: list[CandidateStop], stop: Stop, anchor: Optional[LocationPoint] = None
) -> list[CandidateStop]:
    """Make sure `stop` itself is a candidate, at distance 0 and first in line."""
    rest = [c for c in candidates if c.stop.stop_id != stop.stop_id]
    return [CandidateStop(stop=stop, distance_meters=0.0, anchor=anchor)] + rest
