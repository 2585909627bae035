"""In-memory lookup structures over one schedule snapshot.

A ScheduleIndex is built once per schedule version and then only read, so a
single instance can be shared by every concurrent planning call.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from journeyplanner.geo import distances_from
from journeyplanner.gtfs_parser import (
    TABLE_COLUMNS,
    frame_from_records,
    frame_records,
    get_active_service_ids,
    normalize_frame,
    parse_gtfs_time,
)
from journeyplanner.models import Route, Stop, StopTimeRow, Trip

logger = logging.getLogger("journeyplanner.index")


@dataclass(frozen=True, eq=False)
class ScheduleSnapshot:
    """Point-in-time copy of the schedule tables, GTFS column names."""

    stops: pd.DataFrame
    routes: pd.DataFrame
    trips: pd.DataFrame
    stop_times: pd.DataFrame
    calendar: Optional[pd.DataFrame] = None
    calendar_dates: Optional[pd.DataFrame] = None

    @classmethod
    def from_frames(cls, frames: dict) -> "ScheduleSnapshot":
        def table(name):
            return normalize_frame(name, frames.get(name))

        return cls(
            stops=table("stops"),
            routes=table("routes"),
            trips=table("trips"),
            stop_times=table("stop_times"),
            calendar=table("calendar"),
            calendar_dates=table("calendar_dates"),
        )

    @classmethod
    def from_records(
        cls,
        stops: Iterable = (),
        routes: Iterable = (),
        trips: Iterable = (),
        stop_times: Iterable = (),
        calendar: Iterable = (),
        calendar_dates: Iterable = (),
    ) -> "ScheduleSnapshot":
        return cls(
            stops=frame_from_records("stops", stops),
            routes=frame_from_records("routes", routes),
            trips=frame_from_records("trips", trips),
            stop_times=frame_from_records("stop_times", stop_times),
            calendar=frame_from_records("calendar", calendar),
            calendar_dates=frame_from_records("calendar_dates", calendar_dates),
        )

    @classmethod
    def empty(cls) -> "ScheduleSnapshot":
        return cls(*(pd.DataFrame(columns=TABLE_COLUMNS[name])
                     for name in ("stops", "routes", "trips", "stop_times")))

    @property
    def is_empty(self) -> bool:
        return self.stops.empty or self.trips.empty or self.stop_times.empty

    @property
    def has_calendar(self) -> bool:
        return any(df is not None and not df.empty for df in (self.calendar, self.calendar_dates))


class ScheduleIndex:
    """Trip, stop and route lookups plus the per-stop visit lists the searches walk."""

    def __init__(self, snapshot: ScheduleSnapshot):
        self.snapshot = snapshot
        self.stop_by_id: dict[str, Stop] = {}
        self.route_by_id: dict[str, Route] = {}
        self.trip_by_id: dict[str, Trip] = {}
        self.trip_route: dict[str, str] = {}
        self.stop_times_by_trip: dict[str, list[StopTimeRow]] = {}
        # stop_id -> [(trip_id, position within stop_times_by_trip[trip_id])]
        self.visits_by_stop: dict[str, list[tuple[str, int]]] = {}
        self.skipped_rows = 0

        self._boarding_seconds: dict[str, tuple] = {}
        self._alighting_seconds: dict[str, tuple] = {}
        self._routes_by_stop: dict[str, list[Route]] = {}
        self._coord_stop_ids: list[str] = []
        self._lats = np.empty(0)
        self._lons = np.empty(0)

    @classmethod
    def build(cls, snapshot: ScheduleSnapshot) -> "ScheduleIndex":
        index = cls(snapshot)
        index._index_stops(snapshot.stops)
        index._index_routes(snapshot.routes)
        index._index_trips(snapshot.trips)
        index._index_stop_times(snapshot.stop_times)
        logger.info(
            f"Built schedule index: {len(index.stop_by_id)} stops, {len(index.route_by_id)} routes, "
            f"{len(index.stop_times_by_trip)} trips with stop times, {index.skipped_rows} rows skipped"
        )
        return index

    # --- construction -------------------------------------------------------

    def _index_stops(self, stops: pd.DataFrame):
        for rec in frame_records(stops):
            stop = Stop(
                stop_id=rec["stop_id"],
                stop_name=str(rec.get("stop_name") or ""),
                stop_lat=rec.get("stop_lat"),
                stop_lon=rec.get("stop_lon"),
            )
            self.stop_by_id.setdefault(stop.stop_id, stop)

        located = [s for s in self.stop_by_id.values() if s.has_coordinates]
        located.sort(key=lambda s: s.stop_id)
        self._coord_stop_ids = [s.stop_id for s in located]
        self._lats = np.array([s.stop_lat for s in located], dtype=float)
        self._lons = np.array([s.stop_lon for s in located], dtype=float)

    def _index_routes(self, routes: pd.DataFrame):
        for rec in frame_records(routes):
            route = Route(
                route_id=rec["route_id"],
                route_short_name=str(rec.get("route_short_name") or ""),
                route_long_name=str(rec.get("route_long_name") or ""),
                route_color=str(rec["route_color"]) if rec.get("route_color") else None,
            )
            self.route_by_id.setdefault(route.route_id, route)

    def _index_trips(self, trips: pd.DataFrame):
        for rec in frame_records(trips):
            direction = rec.get("direction_id")
            trip = Trip(
                trip_id=rec["trip_id"],
                route_id=rec["route_id"],
                service_id=str(rec.get("service_id") or ""),
                direction_id=int(direction) if direction is not None else None,
                trip_headsign=str(rec["trip_headsign"]) if rec.get("trip_headsign") else None,
            )
            if trip.trip_id in self.trip_by_id:
                continue
            self.trip_by_id[trip.trip_id] = trip
            self.trip_route[trip.trip_id] = trip.route_id

    def _index_stop_times(self, stop_times: pd.DataFrame):
        if stop_times.empty:
            return

        known = stop_times["trip_id"].isin(list(self.trip_by_id)) & stop_times["stop_id"].isin(
            list(self.stop_by_id)
        )
        has_seq = stop_times["stop_sequence"].notna()
        unknown = int((~known).sum())
        bad_seq = int((known & ~has_seq).sum())

        valid = stop_times[known & has_seq].sort_values(["trip_id", "stop_sequence"], kind="mergesort")
        dup_mask = valid.duplicated(subset=["trip_id", "stop_sequence"], keep="first")
        duplicates = int(dup_mask.sum())
        valid = valid[~dup_mask]

        if unknown:
            logger.warning(f"Skipped {unknown} stop_times rows referencing unknown trips or stops")
        if bad_seq:
            logger.warning(f"Skipped {bad_seq} stop_times rows without a usable stop_sequence")
        if duplicates:
            logger.warning(f"Skipped {duplicates} stop_times rows with a duplicate (trip_id, stop_sequence)")
        self.skipped_rows = unknown + bad_seq + duplicates

        for rec in frame_records(valid):
            row = StopTimeRow(
                trip_id=rec["trip_id"],
                stop_id=rec["stop_id"],
                stop_sequence=int(rec["stop_sequence"]),
                arrival_time=str(rec["arrival_time"]).strip() if rec.get("arrival_time") else None,
                departure_time=str(rec["departure_time"]).strip() if rec.get("departure_time") else None,
            )
            trip_rows = self.stop_times_by_trip.setdefault(row.trip_id, [])
            self.visits_by_stop.setdefault(row.stop_id, []).append((row.trip_id, len(trip_rows)))
            trip_rows.append(row)

        for trip_id, rows in self.stop_times_by_trip.items():
            self._boarding_seconds[trip_id] = tuple(parse_gtfs_time(r.boarding_time) for r in rows)
            self._alighting_seconds[trip_id] = tuple(parse_gtfs_time(r.alighting_time) for r in rows)

        for stop_id, visits in self.visits_by_stop.items():
            route_ids = sorted({self.trip_route[trip_id] for trip_id, _ in visits})
            self._routes_by_stop[stop_id] = [self.route_for(rid) for rid in route_ids]

    # --- queries ------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.stop_by_id or not self.stop_times_by_trip

    def route_for(self, route_id: str) -> Route:
        """Route by id; an id missing from the routes table gets a bare placeholder."""
        route = self.route_by_id.get(route_id)
        if route is None:
            route = Route(route_id=route_id, route_short_name=route_id)
        return route

    def routes_serving(self, stop_id: str) -> list[Route]:
        return list(self._routes_by_stop.get(stop_id, []))

    def boarding_seconds(self, trip_id: str, position: int) -> Optional[int]:
        """Departure at a trip position in seconds, falling back to the arrival."""
        return self._boarding_seconds[trip_id][position]

    def alighting_seconds(self, trip_id: str, position: int) -> Optional[int]:
        """Arrival at a trip position in seconds, falling back to the departure."""
        return self._alighting_seconds[trip_id][position]

    def stops_within(self, lat: float, lon: float, radius_meters: Optional[float] = None) -> list[tuple[Stop, float]]:
        """Stops with coordinates ordered by distance (ties by stop_id); None radius = all."""
        if not self._coord_stop_ids:
            return []
        distances = distances_from(lat, lon, self._lats, self._lons)
        if radius_meters is None:
            picked = np.arange(len(distances))
        else:
            picked = np.flatnonzero(distances <= radius_meters)
        # _coord_stop_ids is sorted, so a stable sort on distance breaks ties by id
        order = picked[np.argsort(distances[picked], kind="stable")]
        return [(self.stop_by_id[self._coord_stop_ids[i]], float(distances[i])) for i in order]

    def trips_for_services(self, service_ids: set) -> frozenset:
        return frozenset(tid for tid, trip in self.trip_by_id.items() if trip.service_id in service_ids)

    def active_trips_on(self, on: date) -> Optional[frozenset]:
        """Trips running on a date, or None when the snapshot carries no calendar."""
        if not self.snapshot.has_calendar:
            return None
        services = get_active_service_ids(
            self.snapshot.calendar, self.snapshot.calendar_dates, self.snapshot.trips, on
        )
        return self.trips_for_services(services)

    @property
    def stats(self) -> dict:
        return {
            "stops": len(self.stop_by_id),
            "routes": len(self.route_by_id),
            "trips": len(self.trip_by_id),
            "stop_times": sum(len(rows) for rows in self.stop_times_by_trip.values()),
            "skipped_rows": self.skipped_rows,
        }
