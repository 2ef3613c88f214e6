"""
Unit tests for view decay and the diversity-capped page builder.

Tests cover:
1. Decay multiplier and hard-cap exclusion
2. Sorting with the recency tie-break
3. Per-page category / venue caps and deferral order
4. Exploration pick placement
5. Trending pick flagging and borrowing
"""

import math
from collections import Counter
from datetime import timedelta

import pytest


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def reranker():
    from feed.feed_reranker import DiversityReranker, RerankerConfig
    return DiversityReranker(RerankerConfig())


@pytest.fixture
def scored(item_factory):
    """Build a ScoredCandidate with the given adjusted score."""
    from feed.feed_reranker import ScoredCandidate
    from scoring.context import ScoreBreakdown

    def _make(item_id, score, **item_kwargs):
        return ScoredCandidate(
            item=item_factory(item_id, **item_kwargs),
            breakdown=ScoreBreakdown(category=score),
            adjusted_score=score,
        )

    return _make


def _view(item_id, seen, interacted=False):
    from feed.models import FeedViewRecord
    return FeedViewRecord(user_id="u1", item_id=item_id, seen_count=seen, interacted=interacted)


# =============================================================================
# Decay
# =============================================================================

class TestDecay:
    def test_multiplier(self, reranker):
        assert reranker.decay_multiplier(0) == pytest.approx(1.0)
        assert reranker.decay_multiplier(2) == pytest.approx(0.70)
        assert reranker.decay_multiplier(7) == 0.0

    def test_exclusion_only_past_hard_cap(self, reranker):
        assert not reranker.is_excluded(None)
        assert not reranker.is_excluded(_view("a", 5))
        assert reranker.is_excluded(_view("a", 6))
        assert not reranker.is_excluded(_view("a", 6, interacted=True))

    def test_apply_decay(self, reranker, scored):
        candidates = [scored("a", 20.0), scored("b", 20.0), scored("c", 20.0), scored("d", -10.0)]
        views = {
            "a": _view("a", 2),
            "b": _view("b", 6),
            "c": _view("c", 6, interacted=True),
            "d": _view("d", 2),
        }

        kept, excluded = reranker.apply_decay(candidates, views)

        assert excluded == 1
        by_id = {c.item_id: c for c in kept}
        assert set(by_id) == {"a", "c", "d"}
        assert by_id["a"].adjusted_score == pytest.approx(14.0)
        assert by_id["a"].decay_multiplier == pytest.approx(0.70)
        assert by_id["c"].adjusted_score == pytest.approx(2.0)
        # decay never lifts a negative score
        assert by_id["d"].adjusted_score == pytest.approx(-13.0)


# =============================================================================
# Pagination
# =============================================================================

class TestPaginate:
    def test_sorted_with_recency_tie_break(self, reranker, scored, now):
        older = scored("older", 10.0, created_at=now - timedelta(days=5))
        newer = scored("newer", 10.0, created_at=now - timedelta(days=1))
        top = scored("top", 11.0, category="ART")

        page = reranker.paginate([older, newer, top], page_index=0, page_size=10)

        assert [c.item_id for c in page.items] == ["top", "newer", "older"]
        assert page.has_more is False

    def test_category_cap_defers_to_next_page(self, reranker, scored):
        candidates = (
            [scored(f"art-{i}", 100.0 - i, category="ART") for i in range(6)]
            + [scored(f"food-{i}", 50.0 - i, category="FOOD") for i in range(3)]
            + [scored(f"bars-{i}", 40.0 - i, category="BARS") for i in range(3)]
        )

        pages = [reranker.paginate(candidates, page_index=k, page_size=6) for k in range(3)]

        assert [c.item_id for c in pages[0].items] == [
            "art-0", "art-1", "food-0", "food-1", "bars-0", "bars-1",
        ]
        assert [c.item_id for c in pages[1].items] == ["art-2", "art-3", "food-2", "bars-2"]
        assert pages[1].has_more is True
        assert [c.item_id for c in pages[2].items] == ["art-4", "art-5"]
        assert pages[2].has_more is False

    def test_cap_holds_on_every_page(self, reranker, scored):
        categories = ["ART", "FOOD", "BARS", "COFFEE"]
        candidates = [
            scored(f"i{i}", float(100 - i), category=categories[i % 7 % 4])
            for i in range(40)
        ]
        cap = math.ceil(9 / 3)
        seen = []
        for k in range(10):
            page = reranker.paginate(candidates, page_index=k, page_size=9)
            counts = Counter(c.item.category for c in page.items)
            assert max(counts.values(), default=0) <= cap
            scores = [c.adjusted_score for c in page.items]
            assert scores == sorted(scores, reverse=True)
            seen.extend(c.item_id for c in page.items)
            if not page.has_more:
                break
        assert sorted(seen) == sorted(c.item_id for c in candidates)

    def test_venue_cap(self, reranker, scored):
        candidates = [
            scored(f"v{i}", 100.0 - i, category=cat, venue_name="Blue Note")
            for i, cat in enumerate(["ART", "FOOD", "BARS", "COFFEE"])
        ] + [scored("other", 1.0, category="OUTDOORS", venue_name="Elsewhere")]

        page = reranker.paginate(candidates, page_index=0, page_size=10)

        # ceil(10 * 0.2) = 2 per venue
        assert [c.item_id for c in page.items] == ["v0", "v1", "other"]
        assert page.has_more is True

    def test_blank_venue_uncapped(self, reranker, scored):
        categories = ["ART", "FOOD", "BARS", "COFFEE", "OUTDOORS"]
        candidates = [scored(f"x{i}", 10.0 - i, category=categories[i]) for i in range(5)]
        page = reranker.paginate(candidates, page_index=0, page_size=5)
        assert len(page.items) == 5

    def test_page_past_end_is_empty(self, reranker, scored):
        page = reranker.paginate([scored("a", 1.0)], page_index=3, page_size=5)
        assert page.items == []
        assert page.has_more is False

    def test_deterministic(self, reranker, scored):
        candidates = [scored(f"i{i}", float(i % 3), category="ART") for i in range(12)]
        first = [c.item_id for c in reranker.paginate(candidates, 1, 4).items]
        second = [c.item_id for c in reranker.paginate(list(reversed(candidates)), 1, 4).items]
        assert first == second


class TestExplorationPlacement:
    def test_pick_at_reserved_slot(self, reranker, scored):
        categories = ["ART", "FOOD", "BARS", "COFFEE"]
        regular = [scored(f"r{i}", 100.0 - i, category=categories[i % 4]) for i in range(12)]
        pick = scored("explore", 0.0, category="OUTDOORS")

        page = reranker.paginate(
            regular + [pick], page_index=0, page_size=10,
            exploration_pool=[pick], picks_per_page=1, pick_slots=[9],
        )

        assert len(page.items) == 10
        assert page.items[9].item_id == "explore"
        assert page.items[9].is_exploration_pick is True
        assert not any(c.is_exploration_pick for c in page.items[:9])

    def test_pick_not_repeated_on_next_page(self, reranker, scored):
        categories = ["ART", "FOOD", "BARS", "COFFEE"]
        regular = [scored(f"r{i}", 100.0 - i, category=categories[i % 4]) for i in range(30)]
        picks = [scored("e1", 0.0, category="OUTDOORS"), scored("e2", 0.0, category="FITNESS")]

        kwargs = dict(exploration_pool=picks, picks_per_page=1, pick_slots=[9])
        page0 = reranker.paginate(regular + picks, 0, 10, **kwargs)
        page1 = reranker.paginate(regular + picks, 1, 10, **kwargs)

        assert page0.items[9].item_id == "e1"
        assert page1.items[9].item_id == "e2"
        assert not {c.item_id for c in page0.items} & {c.item_id for c in page1.items}



class TestTrendingPick:
    CATEGORIES = ["ART", "FOOD", "BARS", "COFFEE", "OUTDOORS"]

    def _regular(self, scored, n):
        return [scored(f"r{i}", 100.0 - i, category=self.CATEGORIES[i % 5]) for i in range(n)]

    def test_borrows_popular_item_into_trending_slot(self, reranker, scored):
        popular = scored("popular", 0.0, category="SEASONAL", rating=5.0, rating_count=1000)
        candidates = self._regular(scored, 10) + [popular]

        page0 = reranker.paginate(candidates, page_index=0, page_size=5)
        page1 = reranker.paginate(candidates, page_index=1, page_size=5)

        assert [c.item_id for c in page0.items] == ["r0", "r1", "r2", "popular", "r3"]
        assert [c.is_trending_pick for c in page0.items] == [False, False, False, True, False]
        # the bumped item leads the next page
        assert page1.items[0].item_id == "r4"
        assert "popular" not in {c.item_id for c in page1.items}

    def test_flags_in_place_when_page_already_trending(self, reranker, scored):
        candidates = self._regular(scored, 4) + [
            scored("hot", 99.5, category="SEASONAL", rating=4.5, rating_count=400),
        ]

        page = reranker.paginate(candidates, page_index=0, page_size=10)

        assert [c.item_id for c in page.items] == ["r0", "hot", "r1", "r2", "r3"]
        assert [c.item_id for c in page.items if c.is_trending_pick] == ["hot"]

    def test_nothing_popular_enough(self, reranker, scored):
        page = reranker.paginate(self._regular(scored, 8), page_index=0, page_size=5)
        assert not any(c.is_trending_pick for c in page.items)

    def test_disabled(self, scored):
        from feed.feed_reranker import DiversityReranker, RerankerConfig

        reranker = DiversityReranker(RerankerConfig(trending_min_popularity=None))
        popular = scored("popular", 0.0, category="SEASONAL", rating=5.0, rating_count=1000)

        page = reranker.paginate(self._regular(scored, 10) + [popular], page_index=0, page_size=5)

        assert [c.item_id for c in page.items] == ["r0", "r1", "r2", "r3", "r4"]
        assert not any(c.is_trending_pick for c in page.items)

class TestDiversityStats:
    def test_entropy(self, reranker, scored):
        page = [
            scored("a", 1.0, category="ART"), scored("b", 1.0, category="ART"),
            scored("c", 1.0, category="FOOD"), scored("d", 1.0, category="FOOD"),
        ]
        stats = reranker.get_diversity_stats(page)
        assert stats["category_entropy"] == pytest.approx(1.0)
        assert stats["unique_categories"] == 2
