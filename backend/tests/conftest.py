"""Pytest configuration and fixtures.

Networks are laid out along a meridian so that walking distances between
stops are exact: moving north by d meters changes latitude by d / R radians.
"""

import math

import pytest

from journeyplanner.models import Stop
from journeyplanner.schedule_index import ScheduleIndex, ScheduleSnapshot

BASE_LAT = 35.17
BASE_LON = 33.36
METERS_PER_DEGREE = 6_371_000 * math.pi / 180


def stop_at(stop_id: str, north_m: float, name: str = "") -> Stop:
    """Stop placed north_m meters north of the base point."""
    return Stop(
        stop_id=stop_id,
        stop_name=name or f"Stop {stop_id}",
        stop_lat=BASE_LAT + north_m / METERS_PER_DEGREE,
        stop_lon=BASE_LON,
    )


def make_snapshot(stops, trips, routes=None, calendar=(), calendar_dates=()) -> ScheduleSnapshot:
    """Snapshot from stops and trips given as (trip_id, route_id, [(stop_id, "HH:MM:SS"), ...]).

    Stop sequences are 1..n in the order given, and each time is used as
    both arrival and departure. A trip tuple may carry a 4th service_id item.
    """
    route_ids = sorted({t[1] for t in trips})
    if routes is None:
        routes = [
            {"route_id": rid, "route_short_name": rid, "route_long_name": f"Line {rid}", "route_color": "#0055AA"}
            for rid in route_ids
        ]
    trip_rows = []
    stop_time_rows = []
    for trip in trips:
        trip_id, route_id, calls = trip[0], trip[1], trip[2]
        service_id = trip[3] if len(trip) > 3 else "ALL"
        trip_rows.append({
            "trip_id": trip_id,
            "route_id": route_id,
            "service_id": service_id,
            "trip_headsign": f"To {calls[-1][0]}",
        })
        for seq, (stop_id, t) in enumerate(calls, start=1):
            stop_time_rows.append({
                "trip_id": trip_id,
                "stop_id": stop_id,
                "stop_sequence": seq,
                "arrival_time": t,
                "departure_time": t,
            })
    return ScheduleSnapshot.from_records(
        stops=stops,
        routes=routes,
        trips=trip_rows,
        stop_times=stop_time_rows,
        calendar=calendar,
        calendar_dates=calendar_dates,
    )


@pytest.fixture
def line_stops() -> list[Stop]:
    """Seven stops 2 km apart, too far to walk between with the default limit."""
    return [stop_at(f"S{i}", (i - 1) * 2000) for i in range(1, 8)]


@pytest.fixture
def line_index(line_stops) -> ScheduleIndex:
    """One route R1, trip T1 calling at S1..S7 every 5 minutes from 07:50."""
    times = ["07:50:00", "07:55:00", "08:00:00", "08:05:00", "08:10:00", "08:15:00", "08:20:00"]
    calls = [(f"S{i}", t) for i, t in enumerate(times, start=1)]
    return ScheduleIndex.build(make_snapshot(line_stops, [("T1", "R1", calls)]))


@pytest.fixture
def transfer_stops() -> list[Stop]:
    """Origin O, transfer stop X, stop Y 200 m from X, destination D."""
    return [
        stop_at("O", 0),
        stop_at("X", 3000),
        stop_at("Y", 3200),
        stop_at("D", 7000),
    ]


@pytest.fixture
def build_index():
    """Factory building a ScheduleIndex from make_snapshot arguments."""
    def _build(*args, **kwargs) -> ScheduleIndex:
        return ScheduleIndex.build(make_snapshot(*args, **kwargs))
    return _build
