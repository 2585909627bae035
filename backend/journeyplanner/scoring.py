"""Journey scoring, near-duplicate collapse and ranking. Lower scores are better."""

from dataclasses import dataclass
from typing import Iterable, Optional

from journeyplanner.config import PlannerConfig
from journeyplanner.gtfs_parser import parse_gtfs_time
from journeyplanner.models import Journey, OptimizationPreference


@dataclass(frozen=True)
class ScoringWeights:
    transfer_penalty: float = 15.0  # minutes added per transfer
    walking_weight: float = 0.5  # extra weight per walking minute


# Every preset keeps both penalties positive so transfers and walking always cost something.
PREFERENCE_WEIGHTS = {
    OptimizationPreference.FASTEST: ScoringWeights(transfer_penalty=10.0, walking_weight=0.25),
    OptimizationPreference.LEAST_WALKING: ScoringWeights(transfer_penalty=15.0, walking_weight=2.0),
    OptimizationPreference.FEWEST_TRANSFERS: ScoringWeights(transfer_penalty=45.0, walking_weight=0.5),
}


def weights_for(
    preference: OptimizationPreference = OptimizationPreference.BALANCED,
    config: Optional[PlannerConfig] = None,
) -> ScoringWeights:
    """Weights for a preference; 'balanced' uses the configured defaults."""
    if preference in PREFERENCE_WEIGHTS:
        return PREFERENCE_WEIGHTS[preference]
    if config is None:
        return ScoringWeights()
    return ScoringWeights(transfer_penalty=config.transfer_penalty, walking_weight=config.walking_weight)


def score_journey(journey: Journey, weights: ScoringWeights = ScoringWeights()) -> float:
    score = (
        journey.total_duration_minutes
        + journey.transfer_count * weights.transfer_penalty
        + journey.total_walking_minutes * weights.walking_weight
    )
    return round(score, 2)


def dedup_key(journey: Journey) -> str:
    """Same ordered routes leaving in the same minute count as the same journey."""
    return ",".join(journey.route_ids) + ":" + journey.departure_time[:5]


def _rank_key(journey: Journey):
    return (
        journey.score,
        parse_gtfs_time(journey.departure_time) or 0,
        parse_gtfs_time(journey.arrival_time) or 0,
        tuple(journey.route_ids),
        tuple(leg.trip_id for leg in journey.transit_legs),
    )


def rank_journeys(
    journeys: Iterable[Journey],
    weights: ScoringWeights = ScoringWeights(),
    limit: Optional[int] = 10,
) -> list[Journey]:
    """Score, collapse duplicates keeping the best of each, sort best-first, cut to `limit`."""
    best: dict[str, Journey] = {}
    for journey in journeys:
        scored = journey.model_copy(update={"score": score_journey(journey, weights)})
        key = dedup_key(scored)
        if key not in best or _rank_key(scored) < _rank_key(best[key]):
            best[key] = scored

    ranked = sorted(best.values(), key=_rank_key)
    return ranked if limit is None else ranked[:limit]
