"""Tests for the journey planner orchestration."""

from datetime import date, datetime

import pytest
from conftest import METERS_PER_DEGREE, make_snapshot, stop_at

from journeyplanner.config import PlannerConfig
from journeyplanner.models import LocationPoint, NoRouteReason, PlanOptions, Stop
from journeyplanner.planner import JourneyPlanner, resolve_filter_time
from journeyplanner.schedule_index import ScheduleIndex, ScheduleSnapshot

MONDAY = datetime(2026, 10, 19, 7, 30, 0)


def _planner(index, now=MONDAY, **config):
    return JourneyPlanner(index, PlannerConfig(**config), clock=lambda: now)


def test_resolve_filter_time() -> None:
    """Test the departure sentinels and explicit times."""
    now = datetime(2026, 10, 19, 14, 35, 12)

    assert resolve_filter_time("all_day", None, now) == "00:00:00"
    assert resolve_filter_time("now", None, now) == "14:35:12"
    assert resolve_filter_time("now", date(2026, 10, 19), now) == "14:35:12"
    assert resolve_filter_time("now", date(2026, 10, 20), now) == "00:00:00"
    assert resolve_filter_time("8:05", None, now) == "08:05:00"
    assert resolve_filter_time("08:05:30", None, now) == "08:05:30"


@pytest.mark.parametrize("value", ["noon", "8", "08:75", "8h05"])
def test_resolve_filter_time_rejects_garbage(value) -> None:
    """Test malformed departure times raise ValueError."""
    with pytest.raises(ValueError):
        resolve_filter_time(value, None, MONDAY)


def test_direct_plan(line_index) -> None:
    """Test S3 -> S7 with 'now' before 08:00 finds trip T1."""
    result = _planner(line_index).plan(Stop(stop_id="S3"), Stop(stop_id="S7"), PlanOptions(departure_time="now"))

    assert not result.no_route_found
    assert result.filter_time == "07:30:00"
    best = result.journeys[0]
    assert [leg.type for leg in best.legs] == ["transit"]
    assert best.legs[0].trip_id == "T1"
    assert best.legs[0].stop_count == 4
    assert best.total_bus_minutes == 20
    assert best.score == 20


def test_departure_after_last_bus(line_index) -> None:
    """Test a filter after the only departure gives a structured no-route result."""
    late = datetime(2026, 10, 19, 8, 1, 0)
    result = _planner(line_index, now=late).plan(Stop(stop_id="S3"), Stop(stop_id="S7"))

    assert result.no_route_found
    assert result.reason == NoRouteReason.NO_JOURNEY
    assert "different time" in result.message
    assert result.journeys == []


def test_all_day_ignores_clock(line_index) -> None:
    """Test 'all_day' searches from the start of the service day."""
    late = datetime(2026, 10, 19, 23, 0, 0)
    result = _planner(line_index, now=late).plan(
        Stop(stop_id="S3"), Stop(stop_id="S7"), PlanOptions(departure_time="all_day")
    )

    assert not result.no_route_found
    assert result.filter_time == "00:00:00"


def test_now_on_another_day_starts_at_midnight(line_index) -> None:
    """Test 'now' for a future date does not use today's clock."""
    late = datetime(2026, 10, 19, 23, 0, 0)
    options = PlanOptions(departure_time="now", departure_date=date(2026, 10, 20))
    result = _planner(line_index, now=late).plan(Stop(stop_id="S3"), Stop(stop_id="S7"), options)

    assert result.filter_time == "00:00:00"
    assert not result.no_route_found


def test_empty_schedule() -> None:
    """Test an empty snapshot reports 'Schedule not loaded' instead of no journeys."""
    index = ScheduleIndex.build(ScheduleSnapshot.empty())

    result = _planner(index).plan(Stop(stop_id="A"), Stop(stop_id="B"))

    assert result.no_route_found
    assert result.reason == NoRouteReason.SCHEDULE_NOT_LOADED
    assert result.message == "Schedule not loaded"


def test_unknown_origin(line_index) -> None:
    """Test an unlocatable origin is reported with its side."""
    result = _planner(line_index).plan(Stop(stop_id="nowhere"), Stop(stop_id="S7"))

    assert result.no_route_found
    assert result.reason == NoRouteReason.ORIGIN_UNRESOLVED
    assert "Origin" in result.message


def test_unknown_destination(line_index) -> None:
    """Test an unlocatable destination is reported with its side."""
    result = _planner(line_index).plan(Stop(stop_id="S1"), Stop(stop_id="nowhere"))

    assert result.reason == NoRouteReason.DESTINATION_UNRESOLVED
    assert "Destination" in result.message


def test_stop_without_coordinates_in_schedule(build_index) -> None:
    """Test a stop lacking coordinates still plans as its own only candidate."""
    stops = [Stop(stop_id="A", stop_name="A"), stop_at("B", 3000)]
    index = build_index(stops, [("t1", "R1", [("A", "08:00:00"), ("B", "08:10:00")])])

    result = _planner(index).plan(Stop(stop_id="A"), Stop(stop_id="B"))

    assert not result.no_route_found
    assert result.journeys[0].legs[0].trip_id == "t1"


def test_nearby_candidate_adds_walk(build_index) -> None:
    """Test the planner walks to a nearby stop when the picked stop has no service."""
    stops = [stop_at("home", 0), stop_at("A", 400), stop_at("B", 5000)]
    index = build_index(stops, [("t1", "R1", [("A", "08:00:00"), ("B", "08:10:00")])])

    result = _planner(index).plan(Stop(stop_id="home"), Stop(stop_id="B"))

    journey = result.journeys[0]
    assert [leg.type for leg in journey.legs] == ["walk", "transit"]
    assert journey.legs[0].minutes == 5
    assert journey.total_duration_minutes == 15


def test_transfer_plan_and_max_transfers(build_index, transfer_stops) -> None:
    """Test transfers are found, and switched off with max_transfers=0."""
    index = build_index(transfer_stops, [
        ("a1", "RA", [("O", "08:00:00"), ("X", "08:20:00")]),
        ("b1", "RB", [("X", "08:25:00"), ("D", "08:45:00")]),
    ])
    planner = _planner(index)

    with_transfer = planner.plan(Stop(stop_id="O"), Stop(stop_id="D"))
    assert with_transfer.journeys[0].transfer_count == 1
    assert with_transfer.journeys[0].score == 45 + 15

    without = planner.plan(Stop(stop_id="O"), Stop(stop_id="D"), PlanOptions(max_transfers=0))
    assert without.no_route_found


def test_direct_preferred_over_transfer(build_index, transfer_stops) -> None:
    """Test enough direct journeys skip the transfer search entirely."""
    trips = [(f"d{i}", "RD", [("O", f"08:{i * 10:02d}:00"), ("D", f"08:{i * 10 + 5:02d}:00")]) for i in range(3)]
    trips += [
        ("a1", "RA", [("O", "08:00:00"), ("X", "08:20:00")]),
        ("b1", "RB", [("X", "08:25:00"), ("D", "08:45:00")]),
    ]
    index = build_index(transfer_stops, trips)

    result = _planner(index, departures_per_route=5).plan(Stop(stop_id="O"), Stop(stop_id="D"))

    assert all(j.transfer_count == 0 for j in result.journeys)
    assert len(result.journeys) == 3


def test_plan_is_deterministic(build_index, transfer_stops) -> None:
    """Test identical inputs produce byte-identical output."""
    index = build_index(transfer_stops, [
        ("a1", "RA", [("O", "08:00:00"), ("X", "08:20:00")]),
        ("a2", "RC", [("O", "08:02:00"), ("X", "08:19:00")]),
        ("b1", "RB", [("X", "08:25:00"), ("D", "08:45:00")]),
        ("b2", "RE", [("Y", "08:26:00"), ("D", "08:44:00")]),
    ])
    planner = _planner(index)

    first = planner.plan(Stop(stop_id="O"), Stop(stop_id="D")).model_dump_json()
    second = planner.plan(Stop(stop_id="O"), Stop(stop_id="D")).model_dump_json()

    assert first == second


def test_calendar_filters_trips() -> None:
    """Test a weekday-only trip is not offered on a Saturday."""
    stops = [stop_at("A", 0), stop_at("B", 3000)]
    calendar = [{"service_id": "WK", "monday": 1, "tuesday": 1, "wednesday": 1, "thursday": 1,
                 "friday": 1, "saturday": 0, "sunday": 0, "start_date": "20260101", "end_date": "20261231"},
                {"service_id": "SUN", "monday": 0, "tuesday": 0, "wednesday": 0, "thursday": 0,
                 "friday": 0, "saturday": 0, "sunday": 1, "start_date": "20260101", "end_date": "20261231"}]
    snapshot = make_snapshot(stops, [
        ("wk", "R1", [("A", "08:00:00"), ("B", "08:10:00")], "WK"),
        ("sun", "R1", [("A", "09:00:00"), ("B", "09:10:00")], "SUN"),
    ], calendar=calendar)
    planner = _planner(ScheduleIndex.build(snapshot))

    monday = planner.plan(Stop(stop_id="A"), Stop(stop_id="B"),
                          PlanOptions(departure_time="all_day", departure_date=date(2026, 10, 19)))
    sunday = planner.plan(Stop(stop_id="A"), Stop(stop_id="B"),
                          PlanOptions(departure_time="all_day", departure_date=date(2026, 10, 25)))

    assert [j.legs[0].trip_id for j in monday.journeys] == ["wk"]
    assert [j.legs[0].trip_id for j in sunday.journeys] == ["sun"]


def test_plan_between_points(line_index) -> None:
    """Test free coordinates resolve to nearby stops with walk legs."""
    s3 = line_index.stop_by_id["S3"]
    s7 = line_index.stop_by_id["S7"]
    origin = LocationPoint(lat=s3.stop_lat - 300 / METERS_PER_DEGREE, lon=s3.stop_lon, name="Home")
    destination = LocationPoint(lat=s7.stop_lat + 300 / METERS_PER_DEGREE, lon=s7.stop_lon, name="Work")

    result = _planner(line_index).plan_between_points(origin, destination, PlanOptions(max_walking_distance=500))

    journey = result.journeys[0]
    assert [leg.type for leg in journey.legs] == ["walk", "transit", "walk"]
    assert journey.legs[0].from_location.name == "Home"
    assert journey.legs[2].to_location.name == "Work"
    assert journey.total_walking_minutes == 8


def test_points_with_no_stops_in_reach(line_index) -> None:
    """Test a point far from every stop reports the origin side."""
    far = LocationPoint(lat=0.0, lon=0.0)
    s7 = line_index.stop_by_id["S7"]
    result = _planner(line_index).plan_between_points(
        far, LocationPoint(lat=s7.stop_lat, lon=s7.stop_lon), PlanOptions(max_walking_distance=500)
    )

    assert result.reason == NoRouteReason.ORIGIN_UNRESOLVED
