"""Tests for the HTTP API."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from journeyplanner.config import PlannerConfig
from journeyplanner.main import app, app_state
from journeyplanner.schedule_provider import ScheduleFetchTimeout, ScheduleStore, ScheduleUnavailable


@pytest.fixture
def client(line_index):
    """Client over the line network; the lifespan is not run."""
    async def loader():
        return line_index.snapshot

    store = ScheduleStore(loader, ttl_seconds=None)
    asyncio.run(store.refresh())
    app_state.clear()
    app_state["store"] = store
    app_state["planner_config"] = PlannerConfig()
    yield TestClient(app)
    app_state.clear()


def _failing_client(exc):
    async def loader():
        raise exc

    app_state.clear()
    app_state["store"] = ScheduleStore(loader)
    return TestClient(app)


def test_health(client) -> None:
    """Test the health endpoint."""
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_schedule_status(client) -> None:
    """Test the status endpoint reports the loaded tables."""
    body = client.get("/api/schedule/status").json()

    assert body["loaded"] is True
    assert body["version"] == 1
    assert body["stops"] == 7


def test_plan(client) -> None:
    """Test planning between two stops."""
    resp = client.get("/api/plan", params={"origin": "S3", "destination": "S7", "departure_time": "07:30"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["no_route_found"] is False
    leg = body["journeys"][0]["legs"][0]
    assert leg["type"] == "transit"
    assert leg["trip_id"] == "T1"
    assert leg["stop_count"] == 4
    assert leg["route"]["route_color"] == "0055AA"


def test_plan_no_route_is_not_an_error(client) -> None:
    """Test an infeasible request is a 200 with no_route_found."""
    resp = client.get("/api/plan", params={"origin": "S7", "destination": "S3", "departure_time": "all_day"})

    assert resp.status_code == 200
    assert resp.json()["no_route_found"] is True
    assert resp.json()["reason"] == "no_journey"


def test_plan_bad_time(client) -> None:
    """Test a malformed departure time is a 422."""
    resp = client.get("/api/plan", params={"origin": "S3", "destination": "S7", "departure_time": "soon"})
    assert resp.status_code == 422


def test_plan_points(client, line_stops) -> None:
    """Test planning between coordinates."""
    s3, s7 = line_stops[2], line_stops[6]
    resp = client.get("/api/plan/points", params={
        "origin_lat": s3.stop_lat, "origin_lon": s3.stop_lon,
        "destination_lat": s7.stop_lat, "destination_lon": s7.stop_lon,
        "departure_time": "all_day",
    })

    assert resp.status_code == 200
    assert resp.json()["journeys"][0]["legs"][0]["trip_id"] == "T1"


def test_plan_enhanced(client) -> None:
    """Test the enhanced plan shape."""
    resp = client.get("/api/plan/enhanced", params={"origin": "S3", "destination": "S7", "departure_time": "all_day"})

    body = resp.json()
    assert resp.status_code == 200
    assert body["no_direct_connection"] is False
    assert body["origin_routes"][0]["departures"] == ["08:00"]


def test_stop_routes(client) -> None:
    """Test routes serving a stop."""
    resp = client.get("/api/stops/S1/routes")

    assert resp.status_code == 200
    assert resp.json()[0]["route"]["route_id"] == "R1"
    assert resp.json()[0]["departures"] == ["07:50"]


def test_stop_routes_unknown_stop(client) -> None:
    """Test an unknown stop is a 404."""
    assert client.get("/api/stops/nope/routes").status_code == 404


def test_schedule_unavailable_is_503() -> None:
    """Test provider failures map to 503."""
    client = _failing_client(ScheduleUnavailable("down"))
    try:
        resp = client.get("/api/plan", params={"origin": "S3", "destination": "S7"})
        assert resp.status_code == 503
    finally:
        app_state.clear()


def test_schedule_timeout_is_504() -> None:
    """Test provider timeouts map to 504."""
    client = _failing_client(ScheduleFetchTimeout("slow"))
    try:
        resp = client.get("/api/plan", params={"origin": "S3", "destination": "S7"})
        assert resp.status_code == 504
    finally:
        app_state.clear()


def test_planning_runs_off_the_event_loop(client, monkeypatch) -> None:
    """Test the search runs in a worker thread, not on the thread serving requests."""
    import journeyplanner.routes as routes_module

    seen = {}
    real_plan = routes_module.smart_trip_plan

    def recording_plan(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            seen["on_loop"] = True
        except RuntimeError:
            seen["on_loop"] = False
        return real_plan(*args, **kwargs)

    monkeypatch.setattr(routes_module, "smart_trip_plan", recording_plan)
    resp = client.get("/api/plan", params={"origin": "S3", "destination": "S7", "departure_time": "all_day"})

    assert resp.status_code == 200
    assert resp.json()["no_route_found"] is False
    assert seen == {"on_loop": False}
