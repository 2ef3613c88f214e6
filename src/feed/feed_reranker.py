"""
Decay & Diversity Reranker for the City Feed.

Two stages, both deterministic:

1. View decay. Every candidate's score is multiplied by
   ``max(0, 1 - seen_count * decay_step)``; an item rendered more than
   ``hard_cap`` times without the user ever engaging with it is dropped.

2. Page building with HARD per-page caps. Pages are built one after the
   other from the top of the sorted pool:
   a. Exploration picks (if any) are placed first at their reserved slots
      and count toward the caps.
   b. The sorted pool is walked in order; an item whose category already
      holds ceil(N * category_share) slots, or whose venue already holds
      ceil(N * venue_share) slots, is deferred to the next page.
   c. Deferred items keep their relative order, so every page stays in
      descending score order.
   d. Trending: the highest-ranked placed item with popularity at or above
      ``trending_min_popularity`` is flagged. A page with none borrows the
      best-ranked qualifying deferred item, inserts it at ``trending_slot``
      and hands its own last regular item to the next page.
   A page may come out shorter than N when the remaining pool cannot
   satisfy the caps; the next page picks up the deferred items.

The whole sequence is rebuilt from page 0 on every request, so page k is
a pure function of the inputs.
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from feed.feedback import apply_multiplier
from feed.models import CandidateItem, FeedViewRecord
from scoring.context import ScoreBreakdown


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class RerankerConfig:
    """Tunable parameters for decay and per-page diversity."""

    # --- View decay ---
    # 0 views: 1.0x, 1: 0.85x, 2: 0.70x ... 7+: 0x
    decay_step: float = 0.15
    # Un-engaged items seen more often than this are excluded
    hard_cap: int = 5

    # --- Per-page hard caps ---
    # N=20 -> 7 per category, 4 per venue
    category_share: float = 1 / 3
    venue_share: float = 0.2

    # --- Trending pick ---
    # None disables it
    trending_min_popularity: Optional[float] = 20.0
    trending_slot: int = 3

    def __post_init__(self):
        if self.decay_step < 0:
            raise ValueError("decay_step must be non-negative")
        if not 0 < self.category_share <= 1 or not 0 < self.venue_share <= 1:
            raise ValueError("diversity shares must be in (0, 1]")

    def category_cap(self, page_size: int) -> int:
        return max(1, math.ceil(page_size * self.category_share - 1e-9))

    def venue_cap(self, page_size: int) -> int:
        return max(1, math.ceil(page_size * self.venue_share - 1e-9))


DEFAULT_RERANKER_CONFIG = RerankerConfig()


# =============================================================================
# Scored candidate
# =============================================================================

@dataclass
class ScoredCandidate:
    """A candidate travelling through the ranking stages."""
    item: CandidateItem
    breakdown: ScoreBreakdown
    feedback_multiplier: float = 1.0
    decay_multiplier: float = 1.0
    adjusted_score: float = 0.0
    is_exploration_pick: bool = False
    is_trending_pick: bool = False
    distance_meters: Optional[float] = None

    @property
    def item_id(self) -> str:
        return self.item.id

    @property
    def raw_score(self) -> float:
        return self.breakdown.total

    @property
    def venue_key(self) -> str:
        return (self.item.venue_name or "").strip().lower()


def sort_key(candidate: ScoredCandidate) -> Tuple[float, float, str]:
    """Score descending, then creation recency descending, then id."""
    return (
        -candidate.adjusted_score,
        -candidate.item.created_at.timestamp(),
        candidate.item_id,
    )


@dataclass
class PageResult:
    items: List[ScoredCandidate] = field(default_factory=list)
    has_more: bool = False


# =============================================================================
# Reranker
# =============================================================================

class DiversityReranker:
    """
    Applies view decay and builds diversity-capped pages.

    Exploration picks are supplied by the caller (see ``feed.exploration``);
    the reranker only places them and counts them toward the caps.
    """

    def __init__(self, config: RerankerConfig = None):
        self.config = config or DEFAULT_RERANKER_CONFIG

    # ------------------------------------------------------------------
    # Decay
    # ------------------------------------------------------------------

    def decay_multiplier(self, seen_count: int) -> float:
        return max(0.0, 1.0 - seen_count * self.config.decay_step)

    def is_excluded(self, view: Optional[FeedViewRecord]) -> bool:
        if view is None:
            return False
        return view.seen_count > self.config.hard_cap and not view.interacted

    def apply_decay(
        self,
        candidates: Sequence[ScoredCandidate],
        views: Dict[str, FeedViewRecord],
    ) -> Tuple[List[ScoredCandidate], int]:
        """
        Decay every candidate in place; return (kept, excluded_count).

        ``adjusted_score`` must already carry the feedback adjustment.
        """
        kept: List[ScoredCandidate] = []
        excluded = 0
        for candidate in candidates:
            view = views.get(candidate.item_id)
            if self.is_excluded(view):
                excluded += 1
                continue
            seen = view.seen_count if view else 0
            multiplier = self.decay_multiplier(seen)
            candidate.decay_multiplier = multiplier
            candidate.adjusted_score = apply_multiplier(candidate.adjusted_score, multiplier)
            kept.append(candidate)
        return kept, excluded

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def paginate(
        self,
        candidates: Sequence[ScoredCandidate],
        page_index: int,
        page_size: int,
        exploration_pool: Optional[Sequence[ScoredCandidate]] = None,
        picks_per_page: int = 0,
        pick_slots: Sequence[int] = (),
    ) -> PageResult:
        """
        Build pages 0..page_index and return the last one.

        Args:
            candidates: Decayed candidates (any order; sorted here).
            page_index: Zero-based page to return.
            page_size: N, the target page length.
            exploration_pool: Off-profile candidates in pick order.
            picks_per_page: Exploration picks reserved on each page.
            pick_slots: Page positions reserved for the picks.
        """
        remaining = sorted(candidates, key=sort_key)
        explore = list(exploration_pool or ())
        page = PageResult()

        for _ in range(page_index + 1):
            items, remaining, explore = self._build_page(
                remaining, explore, page_size, picks_per_page, pick_slots,
            )
            page = PageResult(items=items, has_more=bool(remaining))
            if not remaining and not items:
                break
        return page

    def _build_page(
        self,
        remaining: List[ScoredCandidate],
        explore: List[ScoredCandidate],
        page_size: int,
        picks_per_page: int,
        pick_slots: Sequence[int],
    ) -> Tuple[List[ScoredCandidate], List[ScoredCandidate], List[ScoredCandidate]]:
        cfg = self.config
        category_cap = cfg.category_cap(page_size)
        venue_cap = cfg.venue_cap(page_size)
        category_counts: Dict[Any, int] = defaultdict(int)
        venue_counts: Dict[str, int] = defaultdict(int)

        def fits(candidate: ScoredCandidate) -> bool:
            if category_counts[candidate.item.category] >= category_cap:
                return False
            venue = candidate.venue_key
            return not venue or venue_counts[venue] < venue_cap

        def count(candidate: ScoredCandidate) -> None:
            category_counts[candidate.item.category] += 1
            if candidate.venue_key:
                venue_counts[candidate.venue_key] += 1

        def uncount(candidate: ScoredCandidate) -> None:
            category_counts[candidate.item.category] -= 1
            if candidate.venue_key:
                venue_counts[candidate.venue_key] -= 1

        # a. Exploration picks, in pool order
        picks: List[ScoredCandidate] = []
        remaining_ids = {c.item_id for c in remaining}
        leftover_explore: List[ScoredCandidate] = []
        for candidate in explore:
            if candidate.item_id not in remaining_ids:
                continue
            if len(picks) < picks_per_page and fits(candidate):
                picks.append(candidate)
                count(candidate)
            else:
                leftover_explore.append(candidate)

        pick_ids: Set[str] = {c.item_id for c in picks}
        regular_room = page_size - len(picks)

        # b. Regular items, deferring over-quota ones
        regular: List[ScoredCandidate] = []
        deferred: List[ScoredCandidate] = []
        for candidate in remaining:
            if candidate.item_id in pick_ids:
                continue
            if len(regular) < regular_room and fits(candidate):
                regular.append(candidate)
                count(candidate)
            else:
                deferred.append(candidate)

        # c. Trending: flag one in place, or borrow one from the deferred items
        trending: Optional[ScoredCandidate] = None
        borrowed = False
        threshold = cfg.trending_min_popularity
        if threshold is not None and regular:
            trending = next((c for c in regular if c.item.popularity >= threshold), None)
            if trending is None:
                for i, candidate in enumerate(deferred):
                    if candidate.item.popularity >= threshold and fits(candidate):
                        trending = deferred.pop(i)
                        borrowed = True
                        count(trending)
                        break
                if borrowed and len(regular) >= regular_room:
                    bumped = regular.pop()
                    uncount(bumped)
                    deferred.append(bumped)
                    deferred.sort(key=sort_key)

        for candidate in regular + picks:
            candidate.is_trending_pick = candidate is trending
            candidate.is_exploration_pick = False
        for candidate in picks:
            candidate.is_exploration_pick = True

        # d. Place the borrowed trending item, then picks at their reserved slots
        page = list(regular)
        if borrowed:
            trending.is_trending_pick = True
            trending.is_exploration_pick = False
            page.insert(min(cfg.trending_slot, len(page)), trending)
        for slot, candidate in zip(pick_slots, picks):
            page.insert(min(slot, len(page)), candidate)

        return page, deferred, leftover_explore

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_diversity_stats(self, page: Sequence[ScoredCandidate]) -> Dict[str, Any]:
        """Diversity statistics for a built page (for logging)."""
        category_counts: Dict[str, int] = defaultdict(int)
        venue_counts: Dict[str, int] = defaultdict(int)
        for candidate in page:
            category_counts[candidate.item.category.value] += 1
            if candidate.venue_key:
                venue_counts[candidate.venue_key] += 1
        return {
            "total_items": len(page),
            "unique_categories": len(category_counts),
            "unique_venues": len(venue_counts),
            "exploration_picks": sum(1 for c in page if c.is_exploration_pick),
            "trending_picks": sum(1 for c in page if c.is_trending_pick),
            "top_categories": sorted(category_counts.items(), key=lambda x: (-x[1], x[0]))[:3],
            "category_entropy": self._entropy(category_counts),
        }

    @staticmethod
    def _entropy(counts: Dict[str, int]) -> float:
        """Shannon entropy of a distribution (higher = more diverse)."""
        total = sum(counts.values())
        if total == 0:
            return 0.0
        entropy = 0.0
        for count in counts.values():
            if count > 0:
                p = count / total
                entropy -= p * math.log2(p)
        return round(entropy, 3)

