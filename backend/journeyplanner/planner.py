import logging
import re
import time
from datetime import date, datetime
from typing import Callable, Optional

from journeyplanner.config import PlannerConfig
from journeyplanner.direct_search import find_direct
from journeyplanner.gtfs_parser import parse_gtfs_time
from journeyplanner.models import (
    CandidateStop,
    Journey,
    LocationPoint,
    NoRouteReason,
    PlanOptions,
    PlanResult,
    Stop,
)
from journeyplanner.schedule_index import ScheduleIndex
from journeyplanner.scoring import rank_journeys, weights_for
from journeyplanner.stop_finder import candidates_near, ensure_candidate
from journeyplanner.transfer_search import TransferSearch

logger = logging.getLogger("journeyplanner.planner")

NOW = "now"
ALL_DAY = "all_day"
START_OF_DAY = "00:00:00"

_CLOCK_RE = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")

MSG_SCHEDULE_NOT_LOADED = "Schedule not loaded"
MSG_NO_JOURNEY = "No route found. Try a different time or increase walking distance."


def resolve_filter_time(departure_time: str, departure_date: Optional[date], now: datetime) -> str:
    """Turn the requested departure into an HH:MM:SS lower bound.

    "now" is the wall clock when the date is today (or not given) and the start
    of the day for any other date; "all_day" is always the start of the day.
    """
    value = (departure_time or NOW).strip().lower()
    if value == ALL_DAY:
        return START_OF_DAY
    if value == NOW:
        if departure_date is None or departure_date == now.date():
            return now.strftime("%H:%M:%S")
        return START_OF_DAY
    if not _CLOCK_RE.match(value) or parse_gtfs_time(value) is None:
        raise ValueError(f"Invalid departure time '{departure_time}', expected 'now', 'all_day' or HH:MM")
    h, m, *rest = value.split(":")
    return f"{int(h):02d}:{m}:{rest[0] if rest else '00'}"


def _no_route(reason: NoRouteReason, message: str, **extra) -> PlanResult:
    return PlanResult(no_route_found=True, reason=reason, message=message, **extra)


class JourneyPlanner:
    """Door-to-door planning over one shared, read-only ScheduleIndex.

    The planner keeps no state between calls, so one instance can serve
    concurrent requests.
    """

    def __init__(
        self,
        index: ScheduleIndex,
        config: Optional[PlannerConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.index = index
        self.config = config or PlannerConfig()
        self.clock = clock

    # --- shared steps -------------------------------------------------------

    def filter_time(self, options: PlanOptions) -> str:
        return resolve_filter_time(options.departure_time, options.departure_date, self.clock())

    def allowed_trips(self, options: PlanOptions) -> Optional[frozenset]:
        """Trips running on the requested date; None means no restriction."""
        if options.departure_date is None:
            return None
        trips = self.index.active_trips_on(options.departure_date)
        if trips is not None:
            logger.info(f"{len(trips)} trips run on {options.departure_date.isoformat()}")
        return trips

    def _deadline(self) -> Optional[float]:
        if self.config.search_deadline_seconds is None:
            return None
        return time.monotonic() + self.config.search_deadline_seconds

    def candidates_for_stop(self, stop: Stop, max_walking_distance: int) -> list[CandidateStop]:
        """Candidates around a stop; the stop itself always comes first at distance 0.

        A stop without coordinates is looked up in the schedule; one that is in
        the schedule but still unlocated is its only candidate.
        """
        known = self.index.stop_by_id.get(stop.stop_id)
        if not stop.has_coordinates and known is not None:
            stop = known
        if stop.has_coordinates:
            anchor = LocationPoint(lat=stop.stop_lat, lon=stop.stop_lon, name=stop.stop_name)
            nearby = candidates_near(self.index, stop.stop_lat, stop.stop_lon, max_walking_distance, anchor)
            if known is None:
                return nearby
            return ensure_candidate(nearby, known, anchor)
        if known is not None:
            return [CandidateStop(stop=known, distance_meters=0.0)]
        return []

    def direct_journeys(
        self,
        origins: list[CandidateStop],
        destinations: list[CandidateStop],
        filter_seconds: int,
        allowed_trips: Optional[frozenset] = None,
    ) -> list[Journey]:
        journeys = []
        for o in origins:
            for d in destinations:
                if o.stop.stop_id == d.stop.stop_id:
                    continue
                journeys.extend(find_direct(o, d, self.index, filter_seconds, self.config, allowed_trips))
        return journeys

    def transfer_journeys(
        self,
        origins: list[CandidateStop],
        destinations: list[CandidateStop],
        filter_seconds: int,
        allowed_trips: Optional[frozenset] = None,
        already_found: int = 0,
    ) -> list[Journey]:
        """Transfer search over the closest candidates, stopping once enough journeys exist."""
        search = TransferSearch(self.index, self.config, filter_seconds, allowed_trips, self._deadline())
        limit = self.config.transfer_candidate_limit
        journeys = []
        for o in origins[:limit]:
            for d in destinations[:limit]:
                if already_found + len(journeys) >= self.config.transfer_result_threshold:
                    return journeys
                if search.expired():
                    return journeys
                if o.stop.stop_id == d.stop.stop_id:
                    continue
                journeys.extend(search.search(o, d))
        return journeys

    # --- entry points -------------------------------------------------------

    def plan(self, origin: Stop, destination: Stop, options: Optional[PlanOptions] = None) -> PlanResult:
        """Ranked journeys from one stop to another.

        Raises ValueError for a malformed departure time; every other failure
        comes back as a PlanResult with no_route_found set.
        """
        options = options or PlanOptions()
        if self.index.is_empty:
            return _no_route(NoRouteReason.SCHEDULE_NOT_LOADED, MSG_SCHEDULE_NOT_LOADED)

        origins = self.candidates_for_stop(origin, options.max_walking_distance)
        if not origins:
            return _no_route(
                NoRouteReason.ORIGIN_UNRESOLVED,
                f"Origin stop '{origin.stop_id}' could not be resolved to any stop in the schedule",
            )
        destinations = self.candidates_for_stop(destination, options.max_walking_distance)
        if not destinations:
            return _no_route(
                NoRouteReason.DESTINATION_UNRESOLVED,
                f"Destination stop '{destination.stop_id}' could not be resolved to any stop in the schedule",
            )
        return self._plan(origins, destinations, options)

    def plan_between_points(
        self,
        origin: LocationPoint,
        destination: LocationPoint,
        options: Optional[PlanOptions] = None,
    ) -> PlanResult:
        """Ranked journeys between two free coordinates."""
        options = options or PlanOptions()
        if self.index.is_empty:
            return _no_route(NoRouteReason.SCHEDULE_NOT_LOADED, MSG_SCHEDULE_NOT_LOADED)

        origins = candidates_near(self.index, origin.lat, origin.lon, options.max_walking_distance, origin)
        if not origins:
            return _no_route(NoRouteReason.ORIGIN_UNRESOLVED, "No stops within walking distance of the origin")
        destinations = candidates_near(
            self.index, destination.lat, destination.lon, options.max_walking_distance, destination
        )
        if not destinations:
            return _no_route(
                NoRouteReason.DESTINATION_UNRESOLVED, "No stops within walking distance of the destination"
            )
        return self._plan(origins, destinations, options)

    def _plan(self, origins: list[CandidateStop], destinations: list[CandidateStop], options: PlanOptions) -> PlanResult:
        started = time.perf_counter()
        filter_time = self.filter_time(options)
        filter_seconds = parse_gtfs_time(filter_time)
        allowed = self.allowed_trips(options)

        max_transfers = options.max_transfers
        if max_transfers > 1:
            logger.info(f"max_transfers={max_transfers} requested, searching at most 1 transfer")
            max_transfers = 1

        origins = origins[: self.config.candidate_limit]
        destinations = destinations[: self.config.candidate_limit]
        searched = len(origins) + len(destinations)

        journeys = self.direct_journeys(origins, destinations, filter_seconds, allowed)
        if max_transfers >= 1 and len(journeys) < self.config.transfer_result_threshold:
            journeys.extend(
                self.transfer_journeys(origins, destinations, filter_seconds, allowed, already_found=len(journeys))
            )

        ranked = rank_journeys(journeys, weights_for(options.preference, self.config), self.config.max_results)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Planned {origins[0].stop.stop_id} -> {destinations[0].stop.stop_id} from {filter_time}: "
            f"{len(origins)}x{len(destinations)} candidates, {len(journeys)} found, "
            f"{len(ranked)} returned in {elapsed_ms:.0f}ms"
        )

        if not ranked:
            return _no_route(
                NoRouteReason.NO_JOURNEY, MSG_NO_JOURNEY, filter_time=filter_time, searched_stops=searched
            )
        return PlanResult(journeys=ranked, filter_time=filter_time, searched_stops=searched)
