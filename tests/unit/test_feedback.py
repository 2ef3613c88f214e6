"""
Unit tests for the Feedback Adjuster.
"""

from datetime import timedelta

import pytest


@pytest.fixture
def adjuster():
    from feed.feedback import FeedbackAdjuster
    return FeedbackAdjuster()


@pytest.fixture
def signal(now):
    from feed.models import FeedbackSignal

    def _make(kind, category="ART", tags=(), venue=None, item_id="s"):
        return FeedbackSignal(
            user_id="u1", item_id=item_id, feedback_type=kind,
            category=category, tags=list(tags), venue_name=venue, created_at=now,
        )

    return _make


class TestFactor:
    def test_formula(self, adjuster):
        assert adjuster.factor(0) == pytest.approx(1.0)
        assert adjuster.factor(2) == pytest.approx(1.10)
        assert adjuster.factor(-3) == pytest.approx(0.85)

    def test_clamped(self, adjuster):
        assert adjuster.factor(100) == pytest.approx(1.5)
        assert adjuster.factor(-100) == pytest.approx(0.5)


class TestMultiplier:
    def test_category_more_boosts(self, adjuster, signal, item_factory):
        profile = adjuster.build_profile([signal("MORE"), signal("MORE")])
        assert adjuster.multiplier(item_factory(category="ART"), profile) == pytest.approx(1.10)
        assert adjuster.multiplier(item_factory(category="BARS"), profile) == pytest.approx(1.0)

    def test_more_and_less_cancel(self, adjuster, signal, item_factory):
        profile = adjuster.build_profile([signal("MORE"), signal("LESS")])
        assert adjuster.multiplier(item_factory(category="ART"), profile) == pytest.approx(1.0)

    def test_tag_and_venue_combine(self, adjuster, signal, item_factory):
        profile = adjuster.build_profile([
            signal("LESS", category="FOOD", tags=["brunch"], venue="Cafe Luna"),
        ])
        item = item_factory(category="FOOD", tags=["brunch"], venue_name="cafe luna ")
        assert adjuster.multiplier(item, profile) == pytest.approx(0.95 ** 3)

    def test_product_capped(self, adjuster, signal, item_factory):
        signals = [signal("MORE", tags=["a", "b", "c"]) for _ in range(10)]
        profile = adjuster.build_profile(signals)
        item = item_factory(category="ART", tags=["a", "b", "c"])
        assert adjuster.multiplier(item, profile) == pytest.approx(1.5)

    def test_hide_is_not_a_factor(self, adjuster, signal, item_factory):
        profile = adjuster.build_profile([signal("HIDE")])
        assert profile.is_empty
        assert adjuster.multiplier(item_factory(category="ART"), profile) == 1.0

    def test_monotone_in_more_signals(self, adjuster, signal, item_factory):
        item = item_factory(category="ART", tags=["art"])
        previous = 0.0
        for n in range(0, 25):
            profile = adjuster.build_profile([signal("MORE", tags=["art"]) for _ in range(n)])
            m = adjuster.multiplier(item, profile)
            assert previous <= m <= 1.5
            previous = m

    def test_signal_tags_capped_at_three(self, signal):
        s = signal("MORE", tags=["a", "b", "c", "d"])
        assert s.tags == ["a", "b", "c"]


class TestApplyMultiplier:
    def test_positive_scaled(self):
        from feed.feedback import apply_multiplier

        assert apply_multiplier(20.0, 1.2) == pytest.approx(24.0)
        assert apply_multiplier(20.0, 0.5) == pytest.approx(10.0)

    def test_negative_mirrored(self):
        from feed.feedback import apply_multiplier

        # a boost pulls a penalty toward zero, a reduction deepens it
        assert apply_multiplier(-10.0, 1.2) == pytest.approx(-8.0)
        assert apply_multiplier(-10.0, 0.5) == pytest.approx(-15.0)


class TestWindow:
    def test_window_start(self, adjuster, now):
        assert adjuster.window_start(now) == now - timedelta(days=90)

    def test_invalid_config(self):
        from feed.feedback import FeedbackConfig

        with pytest.raises(ValueError):
            FeedbackConfig(max_adjust=1.5)
