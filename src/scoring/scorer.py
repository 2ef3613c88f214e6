"""
FeedScorer -- multi-factor relevance scoring for one (user, candidate).

Six sub-scores, each bounded by its weight, summed into a raw score:

    category      LIKE:    +w * intensity/5   (0.2 .. 1.0 of w)
                  DISLIKE: -w/2 * intensity/5
    neighborhood  +w if the candidate is in the home hood or allow-list
    vibe          +w * matched affinities / affinities
    companion     +w if a companion tag or the category fits the going-with type
    budget        +w if free, or priced within a set ceiling; never negative
    timing        +w * matched {day, time} sets / specified sets

Scores stay real numbers here; rounding happens only when the ranked
item is built.

Usage::

    from scoring.scorer import FeedScorer
    from scoring.context import ScoringContext

    scorer = FeedScorer()
    ctx = ScoringContext.build(preferences, constraints, now)
    breakdown = scorer.score_item(candidate, ctx)
    breakdown.total, breakdown.reason_tag
"""

from dataclasses import dataclass, fields
from typing import Iterable, Optional, Set

from config.constants import (
    BUDGET_CEILINGS,
    COMPANION_CATEGORY_FAMILIES,
    COMPANION_TAG_FAMILIES,
    PreferenceType,
    VIBE_TAG_FAMILIES,
    WEEKDAY_ORDER,
    time_of_day_for_hour,
)
from feed.models import CandidateItem
from scoring.context import ScoreBreakdown, ScoringContext


@dataclass(frozen=True)
class ScoringWeights:
    """Maximum contribution of each sub-score."""
    category: float = 30.0
    neighborhood: float = 15.0
    vibe: float = 20.0
    companion: float = 15.0
    budget: float = 10.0
    timing: float = 10.0

    def __post_init__(self):
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise ValueError(f"weight '{f.name}' must be non-negative")

    @classmethod
    def from_settings(cls, settings) -> "ScoringWeights":
        return cls(
            category=settings.weight_category,
            neighborhood=settings.weight_neighborhood,
            vibe=settings.weight_vibe,
            companion=settings.weight_companion,
            budget=settings.weight_budget,
            timing=settings.weight_timing,
        )


DEFAULT_SCORING_WEIGHTS = ScoringWeights()

DISLIKE_MAGNITUDE = 0.5
MAX_INTENSITY = 5


def _tag_pool(*groups: Iterable[str]) -> Set[str]:
    pool: Set[str] = set()
    for group in groups:
        pool.update(group)
    return pool


class FeedScorer:
    """
    Scores candidates against a user's profile and constraints.

    Stateless -- safe to share across threads / reuse across requests.
    """

    def __init__(self, weights: Optional[ScoringWeights] = None) -> None:
        self.weights = weights or DEFAULT_SCORING_WEIGHTS

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score_item(self, item: CandidateItem, ctx: ScoringContext) -> ScoreBreakdown:
        return ScoreBreakdown(
            category=self._category(item, ctx),
            neighborhood=self._neighborhood(item, ctx),
            vibe=self._vibe(item, ctx),
            companion=self._companion(item, ctx),
            budget=self._budget(item, ctx),
            timing=self._timing(item, ctx),
        )

    def explain_item(self, item: CandidateItem, ctx: ScoringContext) -> dict:
        """
        Return detailed breakdown of scoring for debugging.
        """
        breakdown = self.score_item(item, ctx)
        explanation = {k: round(v, 4) for k, v in breakdown.to_dict().items()}
        explanation["total"] = round(breakdown.total, 4)
        reason = breakdown.reason_tag
        explanation["reason_tag"] = reason.value if reason else None
        explanation["parsed_price"] = item.parsed_price
        if ctx.companion:
            explanation["companion"] = ctx.companion.value
        return explanation

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    def _category(self, item: CandidateItem, ctx: ScoringContext) -> float:
        pref = ctx.preferences.for_category(item.category)
        if pref is None:
            return 0.0
        strength = pref.intensity / MAX_INTENSITY
        if pref.preference == PreferenceType.LIKE:
            return self.weights.category * strength
        return -DISLIKE_MAGNITUDE * self.weights.category * strength

    def _neighborhood(self, item: CandidateItem, ctx: ScoringContext) -> float:
        if not item.neighborhood or not ctx.neighborhoods:
            return 0.0
        if item.neighborhood.strip().lower() in ctx.neighborhoods:
            return self.weights.neighborhood
        return 0.0

    def _vibe(self, item: CandidateItem, ctx: ScoringContext) -> float:
        affinities = ctx.preferences.vibe_affinities
        if not affinities:
            return 0.0
        pool = _tag_pool(item.vibe_tags, item.tags)
        if not pool:
            return 0.0
        matched = 0
        for affinity in affinities:
            family = VIBE_TAG_FAMILIES.get(affinity, frozenset())
            if any(affinity in tag or tag in family for tag in pool):
                matched += 1
        return self.weights.vibe * matched / len(affinities)

    def _companion(self, item: CandidateItem, ctx: ScoringContext) -> float:
        companion = ctx.companion
        if companion is None:
            return 0.0
        if item.category in COMPANION_CATEGORY_FAMILIES[companion]:
            return self.weights.companion
        family = COMPANION_TAG_FAMILIES[companion]
        pool = _tag_pool(item.companion_tags, item.tags)
        if any(tag == companion.value or tag in family for tag in pool):
            return self.weights.companion
        return 0.0

    def _budget(self, item: CandidateItem, ctx: ScoringContext) -> float:
        price = item.parsed_price
        if price is None:
            return 0.0
        if price == 0.0:
            return self.weights.budget
        ceiling = BUDGET_CEILINGS[ctx.constraints.budget_max]
        if ceiling is not None and price <= ceiling:
            return self.weights.budget
        return 0.0

    def _timing(self, item: CandidateItem, ctx: ScoringContext) -> float:
        if item.is_timeless:
            return 0.0
        days = ctx.constraints.preferred_days
        times = ctx.constraints.preferred_times
        specified = int(bool(days)) + int(bool(times))
        if specified == 0:
            return 0.0
        matched = 0
        start = item.start_time
        if days and WEEKDAY_ORDER[start.weekday()] in days:
            matched += 1
        if times and time_of_day_for_hour(start.hour) in times:
            matched += 1
        return self.weights.timing * matched / specified
