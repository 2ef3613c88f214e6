"""
Exploration Selector

Reserves a fixed share of every page for "off-profile" items, the
categories the user has not expressed an opinion about and is not
already being shown at the top of their feed.

Off-profile means the candidate's category is none of:
- the top categories by best adjusted score (positive scores only)
- a LIKE'd or DISLIKE'd category
- the category of an item the user SAVED or marked DONE

Among off-profile candidates the most popular are picked first
(popularity, then rating, then id). Picks sit at fixed slots
``stride - 1, 2 * stride - 1, ...`` with ``stride = page_size // picks``.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Set

from config.constants import Category, InteractionStatus
from feed.feed_reranker import ScoredCandidate
from feed.models import CandidateItem, InteractionRecord, UserPreferences

ENGAGED_STATUSES = frozenset({InteractionStatus.SAVED, InteractionStatus.DONE})


@dataclass(frozen=True)
class ExplorationConfig:
    rate: float = 0.10
    discovery_rate: float = 0.25
    top_categories: int = 3

    def __post_init__(self):
        if not 0 <= self.rate <= 1 or not 0 <= self.discovery_rate <= 1:
            raise ValueError("exploration rates must be in [0, 1]")


DEFAULT_EXPLORATION_CONFIG = ExplorationConfig()


class ExplorationSelector:
    def __init__(self, config: ExplorationConfig = None):
        self.config = config or DEFAULT_EXPLORATION_CONFIG

    def pick_count(self, page_size: int, discovery_mode: bool = False) -> int:
        """ceil(N * rate): 1 for a page of 10, 3 in discovery mode."""
        rate = self.config.discovery_rate if discovery_mode else self.config.rate
        if rate <= 0 or page_size <= 0:
            return 0
        return min(page_size, math.ceil(page_size * rate - 1e-9))

    @staticmethod
    def pick_slots(page_size: int, picks: int) -> List[int]:
        if picks <= 0:
            return []
        stride = max(1, page_size // picks)
        return [k * stride - 1 for k in range(1, picks + 1)]

    def profile_categories(
        self,
        candidates: Sequence[ScoredCandidate],
        preferences: UserPreferences,
        interactions: Iterable[InteractionRecord],
        items_by_id: Dict[str, CandidateItem],
    ) -> Set[Category]:
        """Categories the user is already exposed to or has an opinion on."""
        on_profile: Set[Category] = {p.category for p in preferences.categories}

        for record in interactions:
            if record.status in ENGAGED_STATUSES:
                item = items_by_id.get(record.item_id)
                if item is not None:
                    on_profile.add(item.category)

        best: Dict[Category, float] = {}
        for candidate in candidates:
            category = candidate.item.category
            if candidate.adjusted_score > best.get(category, 0.0):
                best[category] = candidate.adjusted_score
        ranked = sorted(best.items(), key=lambda kv: (-kv[1], kv[0].value))
        on_profile.update(cat for cat, _ in ranked[:self.config.top_categories])

        return on_profile

    def build_pool(
        self,
        candidates: Sequence[ScoredCandidate],
        on_profile: Set[Category],
    ) -> List[ScoredCandidate]:
        """Off-profile candidates in pick order."""
        pool = [c for c in candidates if c.item.category not in on_profile]
        pool.sort(key=lambda c: (-c.item.popularity, -(c.item.rating or 0.0), c.item_id))
        return pool
