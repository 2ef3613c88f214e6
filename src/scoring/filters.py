"""
Hard Filters

Constraint-based filtering that runs BEFORE any scoring. A candidate
either passes or is dropped; there is no "almost passes".

Rules, in evaluation order:
- city: candidate belongs to the requested city
- expired: event already ended
- hidden: user HIDE'd the item (permanent)
- passed: user marked the item PASS
- free_only: user wants free events only (unknown prices fail)
- budget: parsed price above the user's ceiling (unknown prices pass)
- travel_radius: candidate with coordinates farther than the radius

A candidate whose fields cannot be evaluated is dropped as "malformed"
with a warning; it never aborts the rest of the set.

Usage:
    from scoring.filters import HardFilter

    hard_filter = HardFilter()
    result = hard_filter.check(candidate, ctx, city_id="nyc")
    if not result.passes:
        print(result.reason)
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from config.constants import BUDGET_CEILINGS
from core.logging import get_logger
from core.utils import haversine_meters
from feed.models import CandidateItem, GeoPoint
from scoring.context import ScoringContext

logger = get_logger(__name__)


@dataclass
class FilterResult:
    """Outcome of checking one candidate."""
    passes: bool
    reason: Optional[str] = None


@dataclass
class FilterOutcome:
    """Outcome of filtering a whole candidate set."""
    survivors: List[CandidateItem] = field(default_factory=list)
    dropped: Dict[str, int] = field(default_factory=dict)

    @property
    def dropped_total(self) -> int:
        return sum(self.dropped.values())


_PASS = FilterResult(passes=True)


def resolve_radius_center(ctx: ScoringContext) -> Optional[Tuple[float, float]]:
    """Request center if given, else the user's home location."""
    if ctx.geo_center is not None:
        return ctx.geo_center
    home: Optional[GeoPoint] = ctx.constraints.home_location
    if home is not None:
        return (home.lat, home.lng)
    return None


class HardFilter:
    """Applies the hard filters. Stateless."""

    def check(
        self,
        candidate: CandidateItem,
        ctx: ScoringContext,
        city_id: str,
        hidden_ids: Set[str] = frozenset(),
        passed_ids: Set[str] = frozenset(),
    ) -> FilterResult:
        base = self.check_unpersonalized(candidate, city_id, ctx.now)
        if not base.passes:
            return base

        if candidate.id in hidden_ids:
            return FilterResult(False, "hidden")
        if candidate.id in passed_ids:
            return FilterResult(False, "passed")

        constraints = ctx.constraints
        price = candidate.parsed_price

        if constraints.free_events_only and price != 0.0:
            return FilterResult(False, "free_only")

        ceiling = BUDGET_CEILINGS[constraints.budget_max]
        if ceiling is not None and price is not None and price > ceiling:
            return FilterResult(False, "budget")

        radius = constraints.travel_radius_meters
        center = resolve_radius_center(ctx)
        if radius is not None and center is not None and candidate.location is not None:
            distance = float(haversine_meters(
                center[0], center[1], candidate.location.lat, candidate.location.lng,
            ))
            if distance > radius:
                return FilterResult(False, "travel_radius")

        return _PASS

    @staticmethod
    def check_unpersonalized(
        candidate: CandidateItem, city_id: str, now: datetime,
    ) -> FilterResult:
        """The filters that need no user data."""
        if candidate.city_id != city_id:
            return FilterResult(False, "city")
        if candidate.has_ended(now):
            return FilterResult(False, "expired")
        return _PASS

    def apply(
        self,
        candidates: Iterable[CandidateItem],
        ctx: ScoringContext,
        city_id: str,
        hidden_ids: Set[str] = frozenset(),
        passed_ids: Set[str] = frozenset(),
    ) -> FilterOutcome:
        return self._partition(
            candidates, lambda c: self.check(c, ctx, city_id, hidden_ids, passed_ids),
        )

    def apply_unpersonalized(
        self,
        candidates: Iterable[CandidateItem],
        city_id: str,
        now: datetime,
    ) -> FilterOutcome:
        return self._partition(
            candidates, lambda c: self.check_unpersonalized(c, city_id, now),
        )

    @staticmethod
    def _partition(
        candidates: Iterable[CandidateItem],
        check: Callable[[CandidateItem], FilterResult],
    ) -> FilterOutcome:
        survivors: List[CandidateItem] = []
        dropped: Counter = Counter()
        for candidate in candidates:
            try:
                result = check(candidate)
            except Exception as e:
                logger.warning(
                    "Skipping malformed candidate",
                    item_id=getattr(candidate, "id", None),
                    error=str(e),
                )
                result = FilterResult(False, "malformed")
            if result.passes:
                survivors.append(candidate)
            else:
                dropped[result.reason] += 1
        return FilterOutcome(survivors=survivors, dropped=dict(dropped))
