"""
Unit tests for the Exploration Selector.
"""

import pytest


@pytest.fixture
def selector():
    from feed.exploration import ExplorationSelector
    return ExplorationSelector()


@pytest.fixture
def scored(item_factory):
    from feed.feed_reranker import ScoredCandidate
    from scoring.context import ScoreBreakdown

    def _make(item_id, score, **item_kwargs):
        return ScoredCandidate(
            item=item_factory(item_id, **item_kwargs),
            breakdown=ScoreBreakdown(category=score),
            adjusted_score=score,
        )

    return _make


class TestPickCount:
    @pytest.mark.parametrize("page_size,discovery,expected", [
        (10, False, 1),
        (10, True, 3),
        (20, False, 2),
        (20, True, 5),
        (5, False, 1),
        (1, True, 1),
    ])
    def test_ceil_of_rate(self, selector, page_size, discovery, expected):
        assert selector.pick_count(page_size, discovery) == expected

    def test_zero_rate(self):
        from feed.exploration import ExplorationConfig, ExplorationSelector

        assert ExplorationSelector(ExplorationConfig(rate=0.0)).pick_count(10) == 0


class TestPickSlots:
    def test_slots(self, selector):
        assert selector.pick_slots(10, 1) == [9]
        assert selector.pick_slots(10, 3) == [2, 5, 8]
        assert selector.pick_slots(20, 2) == [9, 19]
        assert selector.pick_slots(10, 0) == []


class TestProfileCategories:
    def test_top_categories_and_opinions(self, selector, scored, now):
        from feed.models import InteractionRecord, UserPreferences

        candidates = [
            scored("a", 30.0, category="LIVE_MUSIC"),
            scored("b", 20.0, category="ART"),
            scored("c", 10.0, category="FOOD"),
            scored("d", 5.0, category="BARS"),
            scored("e", 0.0, category="OUTDOORS"),
            scored("saved", 0.0, category="COFFEE"),
        ]
        prefs = UserPreferences(
            user_id="u1",
            categories=[{"category": "FITNESS", "preference": "DISLIKE", "intensity": 2}],
        )
        interactions = [InteractionRecord(
            user_id="u1", item_id="saved", status="SAVED", created_at=now, updated_at=now,
        )]

        on_profile = selector.profile_categories(
            candidates, prefs, interactions, {c.item_id: c.item for c in candidates},
        )

        values = {c.value for c in on_profile}
        assert values == {"LIVE_MUSIC", "ART", "FOOD", "FITNESS", "COFFEE"}

    def test_zero_scores_are_not_profile(self, selector, scored):
        from feed.models import UserPreferences

        candidates = [scored("a", 0.0, category="ART"), scored("b", -3.0, category="BARS")]
        on_profile = selector.profile_categories(candidates, UserPreferences(user_id="u1"), [], {})
        assert on_profile == set()


class TestBuildPool:
    def test_orders_by_popularity(self, selector, scored):
        from config.constants import Category

        candidates = [
            scored("quiet", 0.0, category="OUTDOORS", rating=4.0, rating_count=2),
            scored("busy", 0.0, category="OUTDOORS", rating=4.5, rating_count=500),
            scored("saved", 0.0, category="SEASONAL", save_count=40),
            scored("liked", 50.0, category="ART", rating=5.0, rating_count=1000),
        ]
        pool = selector.build_pool(candidates, {Category.ART})
        assert [c.item_id for c in pool] == ["saved", "busy", "quiet"]
