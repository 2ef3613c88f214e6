"""
Unit tests for the Proximity Augmenter.
"""

import pytest

# ~1 m of latitude in degrees
M = 1 / 111_195


@pytest.fixture
def augmenter():
    from feed.proximity import ProximityAugmenter
    return ProximityAugmenter()


@pytest.fixture
def located(item_factory):
    from feed.feed_reranker import ScoredCandidate
    from scoring.context import ScoreBreakdown

    def _make(item_id, meters_north=None):
        location = None
        if meters_north is not None:
            location = {"lat": 40.0 + meters_north * M, "lng": -73.0}
        return ScoredCandidate(
            item=item_factory(item_id, location=location),
            breakdown=ScoreBreakdown(),
        )

    return _make


class TestNearby:
    def test_radius_keeps_only_close_items(self, augmenter, located):
        from feed.proximity import GeoQuery

        candidates = [located("far", 2000), located("close", 500), located("no-geo")]
        nearby = augmenter.nearby(candidates, GeoQuery(40.0, -73.0, 1000))

        assert [c.item_id for c in nearby] == ["close"]
        assert nearby[0].distance_meters == pytest.approx(500, rel=1e-3)

    def test_wide_radius_at_high_latitude(self, augmenter, item_factory):
        from feed.feed_reranker import ScoredCandidate
        from feed.proximity import GeoQuery
        from scoring.context import ScoreBreakdown

        edge = ScoredCandidate(
            item=item_factory("edge", location={"lat": 60.5, "lng": 11.49}),
            breakdown=ScoreBreakdown(),
        )
        nearby = augmenter.nearby([edge], GeoQuery(60.0, 0.0, 637_100))

        assert [c.item_id for c in nearby] == ["edge"]
        assert nearby[0].distance_meters < 637_100

    def test_sorted_by_distance_then_id(self, augmenter, located):
        from feed.proximity import GeoQuery

        candidates = [located("b", 300), located("c", 100), located("a", 300)]
        nearby = augmenter.nearby(candidates, GeoQuery(40.0, -73.0, 1000))
        assert [c.item_id for c in nearby] == ["c", "a", "b"]

    def test_limit(self, augmenter, located):
        from feed.proximity import GeoQuery

        candidates = [located(f"i{i}", i * 10) for i in range(10)]
        nearby = augmenter.nearby(candidates, GeoQuery(40.0, -73.0, 1000), limit=3)
        assert [c.item_id for c in nearby] == ["i0", "i1", "i2"]

    def test_nothing_located(self, augmenter, located):
        from feed.proximity import GeoQuery

        assert augmenter.nearby([located("x")], GeoQuery(40.0, -73.0, 1000)) == []

    def test_across_antimeridian(self, augmenter, item_factory):
        from feed.feed_reranker import ScoredCandidate
        from feed.proximity import GeoQuery
        from scoring.context import ScoreBreakdown

        east = ScoredCandidate(
            item=item_factory("east", location={"lat": 0.0, "lng": 179.999}),
            breakdown=ScoreBreakdown(),
        )
        nearby = augmenter.nearby([east], GeoQuery(0.0, -179.999, 1000))
        assert [c.item_id for c in nearby] == ["east"]


class TestAnnotate:
    def test_sets_distance_only_when_located(self, augmenter, located):
        candidates = [located("close", 250), located("no-geo")]
        augmenter.annotate_distances(candidates, (40.0, -73.0))

        assert candidates[0].distance_meters == pytest.approx(250, rel=1e-3)
        assert isinstance(candidates[0].distance_meters, float)
        assert candidates[1].distance_meters is None
