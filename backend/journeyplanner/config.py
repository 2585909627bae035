"""Runtime settings and planner tunables, read from the environment (.env supported)."""

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    """Where the schedule comes from and how long a loaded copy stays fresh."""

    schedule_base_url: str = ""
    schedule_api_key: str = ""
    schedule_operator: str = ""
    schedule_fetch_timeout: float = 60.0
    schedule_ttl_seconds: float = 3600.0
    schedule_retry_seconds: float = 5.0
    gtfs_data_dir: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            schedule_base_url=os.getenv("SCHEDULE_BASE_URL", "").rstrip("/"),
            schedule_api_key=os.getenv("SCHEDULE_API_KEY", ""),
            schedule_operator=os.getenv("SCHEDULE_OPERATOR", ""),
            schedule_fetch_timeout=_env_float("SCHEDULE_FETCH_TIMEOUT", 60.0),
            schedule_ttl_seconds=_env_float("SCHEDULE_TTL_SECONDS", 3600.0),
            schedule_retry_seconds=_env_float("SCHEDULE_RETRY_SECONDS", 5.0),
            gtfs_data_dir=os.getenv("GTFS_DATA_DIR", ""),
        )


@dataclass(frozen=True)
class PlannerConfig:
    """Search fan-out caps and scoring weights.

    The caps were tuned empirically against a regional bus network; they bound
    the candidate cross product so a plan stays well under a second.
    """

    max_results: int = 10
    candidate_limit: int = 10
    transfer_candidate_limit: int = 3
    combinations_per_transfer_stop: int = 3
    transfer_result_threshold: int = 3
    departures_per_route: int = 3

    walk_suppression_m: float = 50.0
    transfer_walk_radius_m: float = 300.0
    same_stop_radius_m: float = 30.0
    min_transfer_buffer_minutes: int = 2

    transfer_penalty: float = 15.0
    walking_weight: float = 0.5

    # Seconds; None disables the check inside the search loops.
    search_deadline_seconds: Optional[float] = None

    @classmethod
    def from_env(cls) -> "PlannerConfig":
        defaults = cls()
        return cls(
            max_results=_env_int("PLANNER_MAX_RESULTS", defaults.max_results),
            candidate_limit=_env_int("PLANNER_CANDIDATE_LIMIT", defaults.candidate_limit),
            transfer_candidate_limit=_env_int(
                "PLANNER_TRANSFER_CANDIDATE_LIMIT", defaults.transfer_candidate_limit
            ),
            transfer_penalty=_env_float("PLANNER_TRANSFER_PENALTY", defaults.transfer_penalty),
            walking_weight=_env_float("PLANNER_WALKING_WEIGHT", defaults.walking_weight),
            search_deadline_seconds=_env_float("PLANNER_SEARCH_DEADLINE", None),
        )
