"""
Comparable matching & scoring.

Each comparable starts at `base_score` and receives independent, additive
adjustments for bedrooms, bathrooms, density class, distance band, recency
band and land-area similarity. The terms are not mutually exclusive, so a
comparable that is both far and old is penalised twice.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..data.base import ComparableProperty
from .weights import ScoringWeights

DAYS_PER_MONTH = 30.4375

HOUSE, TOWNHOUSE, UNIT = "house", "townhouse", "unit"
_DENSITY_ALIASES = {
    TOWNHOUSE: ("townhouse", "villa", "terrace", "duplex", "semi"),
    UNIT: ("unit", "apartment", "flat", "studio", "condo"),
}


def density_class(property_type: Optional[str]) -> str:
    """Collapse provider property types into house / townhouse / unit."""
    text = (property_type or "").lower()
    for klass, aliases in _DENSITY_ALIASES.items():
        if any(a in text for a in aliases):
            return klass
    return HOUSE


@dataclass(frozen=True)
class Target:
    beds: int
    baths: int
    property_type: str = "House"
    land_area: Optional[float] = None


@dataclass
class ScoredComparables:
    comparables: List[ComparableProperty]
    exact_matches: int


def distance_band(distance_km: float, w: ScoringWeights) -> tuple[str, float]:
    """Exactly one band per distance; thresholds are exclusive upper bounds."""
    if distance_km < w.distance_ultra_close_km:
        return "ultra_close", w.distance_ultra_close_bonus
    if distance_km < w.distance_very_close_km:
        return "very_close", w.distance_very_close_bonus
    if distance_km < w.distance_close_km:
        return "close", w.distance_close_bonus
    if distance_km < w.distance_moderate_km:
        return "moderate", w.distance_moderate_adjustment
    if distance_km < w.distance_far_km:
        return "far", w.distance_far_adjustment
    if distance_km > w.distance_very_far_km:
        return "very_far", w.distance_very_far_adjustment
    return "distant", w.distance_distant_adjustment


def recency_band(age_months: float, w: ScoringWeights) -> tuple[str, float]:
    """Exactly one band per age; thresholds are inclusive upper bounds."""
    if age_months <= w.recency_very_recent_months:
        return "very_recent", w.recency_very_recent_bonus
    if age_months <= w.recency_recent_months:
        return "recent", w.recency_recent_bonus
    if age_months <= w.recency_getting_old_months:
        return "getting_old", w.recency_getting_old_adjustment
    if age_months <= w.recency_old_months:
        return "old", w.recency_old_adjustment
    return "very_old", w.recency_very_old_adjustment


def density_penalty(target_type: Optional[str], comp_type: Optional[str], w: ScoringWeights) -> float:
    classes = {density_class(target_type), density_class(comp_type)}
    if classes == {HOUSE, UNIT}:
        return w.density_house_unit_penalty
    if classes == {HOUSE, TOWNHOUSE}:
        return w.density_house_townhouse_penalty
    return 0.0


class ScoringEngine:
    def __init__(self, weights: ScoringWeights, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.weights = weights
        self.clock = clock

    def score(self, target: Target, comp: ComparableProperty) -> float:
        w = self.weights
        score = w.base_score

        if comp.beds is not None:
            score -= w.bedroom_penalty * abs(comp.beds - target.beds)
        if comp.baths is not None:
            score -= w.bathroom_penalty * abs(comp.baths - target.baths)

        score -= density_penalty(target.property_type, comp.property_type, w)

        if comp.distance_km is not None:
            score += distance_band(comp.distance_km, w)[1]

        if comp.sold_date_raw is not None:
            age_days = (self.clock() - comp.sold_date_raw).total_seconds() / 86400
            score += recency_band(max(0.0, age_days) / DAYS_PER_MONTH, w)[1]

        if w.land_area_weight and target.land_area and comp.land_area:
            a, b = float(target.land_area), float(comp.land_area)
            similarity = 1 - abs(a - b) / max(a, b)
            score += w.land_area_weight * similarity

        return round(score, 2)

    def is_exact_match(self, target: Target, comp: ComparableProperty) -> bool:
        return (
            comp.beds == target.beds
            and comp.baths == target.baths
            and density_class(comp.property_type) == density_class(target.property_type)
        )

    def rank(self, target: Target, comparables: List[ComparableProperty]) -> ScoredComparables:
        scored = [c.with_score(self.score(target, c)) for c in comparables]
        # stable sort keeps provider order among equal scores
        scored.sort(key=lambda c: c.score, reverse=True)
        exact = sum(1 for c in comparables if self.is_exact_match(target, c))
        return ScoredComparables(comparables=scored, exact_matches=exact)
