"""
Scoring Module.

Per-candidate relevance scoring used by the feed pipeline (``feed/``).

Quick start::

    from scoring import FeedScorer, HardFilter, ScoringContext

    ctx = ScoringContext.build(preferences, constraints, now)
    survivors = HardFilter().apply(candidates, ctx, city_id="nyc").survivors
    breakdowns = [FeedScorer().score_item(c, ctx) for c in survivors]
"""

from scoring.context import ReasonTag, ScoreBreakdown, ScoringContext
from scoring.filters import FilterOutcome, FilterResult, HardFilter
from scoring.scorer import DEFAULT_SCORING_WEIGHTS, FeedScorer, ScoringWeights

__all__ = [
    "ReasonTag",
    "ScoreBreakdown",
    "ScoringContext",
    "FilterOutcome",
    "FilterResult",
    "HardFilter",
    "DEFAULT_SCORING_WEIGHTS",
    "FeedScorer",
    "ScoringWeights",
]
