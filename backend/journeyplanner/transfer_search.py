"""Two-trip journeys joined at a shared stop or by a short walk between stops.

A TransferSearch lives for one planning call. It memoizes the forward
reachability from each boarding stop and the backward reachability into each
alighting stop, so trying several candidate pairs does not rescan the same
trips. Nothing in it is shared between calls.
"""

import bisect
import logging
import time
from dataclasses import dataclass
from typing import Optional

from journeyplanner.config import PlannerConfig
from journeyplanner.geo import walking_minutes
from journeyplanner.itinerary import build_journey, stop_point, walk_leg
from journeyplanner.models import CandidateStop, Journey
from journeyplanner.schedule_index import ScheduleIndex

logger = logging.getLogger("journeyplanner.transfer")


@dataclass(frozen=True)
class RideSegment:
    """One ride on one trip between two positions of its stop list."""

    trip_id: str
    route_id: str
    board_pos: int
    alight_pos: int
    board_seconds: int
    alight_seconds: int


class TransferSearch:
    def __init__(
        self,
        index: ScheduleIndex,
        config: PlannerConfig,
        filter_seconds: int,
        allowed_trips: Optional[frozenset] = None,
        deadline: Optional[float] = None,
    ):
        self.index = index
        self.config = config
        self.filter_seconds = filter_seconds
        self.allowed_trips = allowed_trips
        self.deadline = deadline  # time.monotonic() value
        self.timed_out = False
        self._reachable: dict[str, dict[str, list[RideSegment]]] = {}
        self._reaching: dict[str, dict[str, dict[str, tuple[list[int], list[RideSegment]]]]] = {}
        self._neighbours: dict[str, list[tuple[str, float]]] = {}

    def _allowed(self, trip_id: str) -> bool:
        return self.allowed_trips is None or trip_id in self.allowed_trips

    def expired(self) -> bool:
        if self.deadline is not None and time.monotonic() > self.deadline:
            if not self.timed_out:
                logger.warning("Transfer search deadline reached, returning partial results")
            self.timed_out = True
        return self.timed_out

    def reachable_from(self, stop_id: str) -> dict[str, list[RideSegment]]:
        """Stops reachable by one ride boarding at stop_id.

        For each reached stop, the earliest arrival of each route is kept, and
        at most `combinations_per_transfer_stop` routes (earliest first).
        """
        if stop_id in self._reachable:
            return self._reachable[stop_id]

        best: dict[str, dict[str, RideSegment]] = {}
        index = self.index
        for trip_id, board_pos in index.visits_by_stop.get(stop_id, ()):
            if not self._allowed(trip_id):
                continue
            departure = index.boarding_seconds(trip_id, board_pos)
            if departure is None or departure < self.filter_seconds:
                continue
            route_id = index.trip_route[trip_id]
            rows = index.stop_times_by_trip[trip_id]
            for pos in range(board_pos + 1, len(rows)):
                arrival = index.alighting_seconds(trip_id, pos)
                if arrival is None or arrival < departure:
                    continue
                seg = RideSegment(trip_id, route_id, board_pos, pos, departure, arrival)
                per_route = best.setdefault(rows[pos].stop_id, {})
                current = per_route.get(route_id)
                if current is None or (arrival, trip_id) < (current.alight_seconds, current.trip_id):
                    per_route[route_id] = seg

        limit = self.config.combinations_per_transfer_stop
        reachable = {
            sid: sorted(per_route.values(), key=lambda s: (s.alight_seconds, s.route_id, s.trip_id))[:limit]
            for sid, per_route in best.items()
        }
        self._reachable[stop_id] = reachable
        return reachable

    def reaching(self, stop_id: str) -> dict[str, dict[str, tuple[list[int], list[RideSegment]]]]:
        """Rides that end at stop_id, keyed by boarding stop then route.

        Each route entry is (board times, segments) sorted by board time so a
        connection can be found with bisect.
        """
        if stop_id in self._reaching:
            return self._reaching[stop_id]

        grouped: dict[str, dict[str, list[RideSegment]]] = {}
        index = self.index
        for trip_id, alight_pos in index.visits_by_stop.get(stop_id, ()):
            if not self._allowed(trip_id):
                continue
            arrival = index.alighting_seconds(trip_id, alight_pos)
            if arrival is None:
                continue
            route_id = index.trip_route[trip_id]
            rows = index.stop_times_by_trip[trip_id]
            for pos in range(alight_pos - 1, -1, -1):
                departure = index.boarding_seconds(trip_id, pos)
                if departure is None or departure < self.filter_seconds or departure > arrival:
                    continue
                seg = RideSegment(trip_id, route_id, pos, alight_pos, departure, arrival)
                grouped.setdefault(rows[pos].stop_id, {}).setdefault(route_id, []).append(seg)

        reaching = {}
        for sid, routes in grouped.items():
            reaching[sid] = {}
            for route_id, segs in routes.items():
                segs.sort(key=lambda s: (s.board_seconds, s.alight_seconds, s.trip_id))
                reaching[sid][route_id] = ([s.board_seconds for s in segs], segs)
        self._reaching[stop_id] = reaching
        return reaching

    def neighbours(self, stop_id: str) -> list[tuple[str, float]]:
        """Stops within walking-transfer range, excluding ones close enough to be the same stop."""
        if stop_id in self._neighbours:
            return self._neighbours[stop_id]
        stop = self.index.stop_by_id.get(stop_id)
        found = []
        if stop is not None and stop.has_coordinates:
            for other, dist in self.index.stops_within(stop.stop_lat, stop.stop_lon, self.config.transfer_walk_radius_m):
                if other.stop_id == stop_id or dist < self.config.same_stop_radius_m:
                    continue
                found.append((other.stop_id, dist))
        self._neighbours[stop_id] = found
        return found

    def _connections(
        self,
        first_legs: list[RideSegment],
        onward: dict[str, tuple[list[int], list[RideSegment]]],
        walk_seconds: int,
    ) -> list[tuple[RideSegment, RideSegment]]:
        buffer = self.config.min_transfer_buffer_minutes * 60
        pairs = []
        for first in first_legs:
            ready = first.alight_seconds + walk_seconds + buffer
            for route_id in sorted(onward):
                if route_id == first.route_id:
                    continue
                times, segs = onward[route_id]
                i = bisect.bisect_left(times, ready)
                if i < len(segs):
                    pairs.append((first, segs[i]))
        pairs.sort(key=lambda p: (p[1].alight_seconds, p[0].alight_seconds, p[0].trip_id, p[1].trip_id))
        return pairs[: self.config.combinations_per_transfer_stop]

    def search(self, origin: CandidateStop, destination: CandidateStop) -> list[Journey]:
        origin_id = origin.stop.stop_id
        dest_id = destination.stop.stop_id
        if origin_id == dest_id:
            return []

        from_origin = self.reachable_from(origin_id)
        to_dest = self.reaching(dest_id)
        if not from_origin or not to_dest:
            return []

        journeys = []
        for stop_id in sorted(from_origin):
            if self.expired():
                break
            if stop_id in (origin_id, dest_id):
                continue
            first_legs = from_origin[stop_id]

            # Shared stop: get off and wait for another route at the same place
            if stop_id in to_dest:
                for first, second in self._connections(first_legs, to_dest[stop_id], 0):
                    journeys.append(self._journey(origin, destination, first, second))

            # Walking transfer to a nearby stop
            for other_id, meters in self.neighbours(stop_id):
                if other_id in (origin_id, dest_id) or other_id not in to_dest:
                    continue
                minutes = walking_minutes(meters)
                for first, second in self._connections(first_legs, to_dest[other_id], minutes * 60):
                    hop = walk_leg(
                        stop_point(self.index.stop_by_id[stop_id]),
                        stop_point(self.index.stop_by_id[other_id]),
                        meters,
                    )
                    journeys.append(self._journey(origin, destination, first, second, hop))

        return journeys

    def _journey(self, origin, destination, first: RideSegment, second: RideSegment, hop=None) -> Journey:
        rides = [
            (first.trip_id, first.board_pos, first.alight_pos),
            (second.trip_id, second.board_pos, second.alight_pos),
        ]
        return build_journey(self.index, self.config, origin, destination, rides, transfer_walk=hop)
