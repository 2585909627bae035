from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Schedule rows -----------------------------------------------------------

class Stop(BaseModel):
    model_config = ConfigDict(frozen=True)

    stop_id: str
    stop_name: str = ""
    stop_lat: Optional[float] = None
    stop_lon: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.stop_lat is not None and self.stop_lon is not None


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    route_id: str
    route_short_name: str = ""
    route_long_name: str = ""
    route_color: Optional[str] = None  # hex, no leading '#'

    @field_validator("route_color")
    @classmethod
    def _strip_hash(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lstrip("#")
        return v or None


class Trip(BaseModel):
    model_config = ConfigDict(frozen=True)

    trip_id: str
    route_id: str
    service_id: str = ""
    direction_id: Optional[int] = None
    trip_headsign: Optional[str] = None


class StopTimeRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    trip_id: str
    stop_id: str
    stop_sequence: int
    arrival_time: Optional[str] = None  # HH:MM:SS, may exceed 24:00:00
    departure_time: Optional[str] = None

    @property
    def boarding_time(self) -> Optional[str]:
        """Time a rider can board here: departure, falling back to arrival."""
        return self.departure_time or self.arrival_time

    @property
    def alighting_time(self) -> Optional[str]:
        """Time a rider gets off here: arrival, falling back to departure."""
        return self.arrival_time or self.departure_time


# --- Journey building blocks ------------------------------------------------

class LocationPoint(BaseModel):
    lat: float
    lon: float
    name: str = ""


class CandidateStop(BaseModel):
    """A stop considered for boarding or alighting, with its walk from the anchor point."""

    stop: Stop
    distance_meters: float = 0.0
    anchor: Optional[LocationPoint] = None


class WalkLeg(BaseModel):
    type: Literal["walk"] = "walk"
    from_location: LocationPoint
    to_location: LocationPoint
    meters: float
    minutes: int


class TransitLeg(BaseModel):
    type: Literal["transit"] = "transit"
    route: Route
    from_stop: Stop
    to_stop: Stop
    trip_id: str
    departure_time: str
    arrival_time: str
    stop_count: int
    headsign: Optional[str] = None


Leg = Annotated[Union[WalkLeg, TransitLeg], Field(discriminator="type")]


class Journey(BaseModel):
    legs: list[Leg] = Field(default_factory=list)
    total_duration_minutes: int = 0
    total_walking_minutes: int = 0
    total_bus_minutes: int = 0
    transfer_count: int = 0
    departure_time: str = ""
    arrival_time: str = ""
    score: float = 0.0

    @property
    def transit_legs(self) -> list[TransitLeg]:
        return [leg for leg in self.legs if isinstance(leg, TransitLeg)]

    @property
    def route_ids(self) -> list[str]:
        return [leg.route.route_id for leg in self.transit_legs]


# --- Planner input / output -------------------------------------------------

class OptimizationPreference(str, Enum):
    BALANCED = "balanced"
    FASTEST = "fastest"
    LEAST_WALKING = "least_walking"
    FEWEST_TRANSFERS = "fewest_transfers"


class PlanOptions(BaseModel):
    departure_time: str = "now"  # "now" | "all_day" | "HH:MM" | "HH:MM:SS"
    departure_date: Optional[date] = None
    max_walking_distance: int = Field(1000, ge=0)  # meters, 0 = unlimited
    max_transfers: int = Field(1, ge=0)
    preference: OptimizationPreference = OptimizationPreference.BALANCED


class NoRouteReason(str, Enum):
    SCHEDULE_NOT_LOADED = "schedule_not_loaded"
    ORIGIN_UNRESOLVED = "origin_unresolved"
    DESTINATION_UNRESOLVED = "destination_unresolved"
    NO_JOURNEY = "no_journey"


class PlanResult(BaseModel):
    journeys: list[Journey] = Field(default_factory=list)
    no_route_found: bool = False
    message: Optional[str] = None
    reason: Optional[NoRouteReason] = None
    filter_time: Optional[str] = None
    searched_stops: int = 0


# --- Call-site shapes -------------------------------------------------------

class StopRouteDepartures(BaseModel):
    route: Route
    headsign: Optional[str] = None
    departures: list[str] = Field(default_factory=list)  # HH:MM


class EnhancedTripPlan(BaseModel):
    direct_journeys: list[Journey] = Field(default_factory=list)
    transfer_journeys: list[Journey] = Field(default_factory=list)
    origin_routes: list[StopRouteDepartures] = Field(default_factory=list)
    destination_routes: list[StopRouteDepartures] = Field(default_factory=list)
    no_direct_connection: bool = False
    no_route_found: bool = False
    message: Optional[str] = None


class ScheduleStatus(BaseModel):
    loaded: bool
    version: int = 0
    loaded_at: Optional[float] = None
    stops: int = 0
    routes: int = 0
    trips: int = 0
    stop_times: int = 0
    skipped_rows: int = 0
