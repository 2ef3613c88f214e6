"""
Proximity Augmenter

Given a center and a radius, measures the great-circle distance to every
candidate with coordinates and returns the ones inside the radius,
nearest first. This "nearby" set is returned next to the primary ranking,
never instead of it. Candidates without coordinates are skipped here and
only here.

Distances are computed in one vectorized numpy pass after a bounding-box
pre-filter.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from core.utils import bounding_box, convert_numpy, haversine_meters
from feed.feed_reranker import ScoredCandidate


@dataclass(frozen=True)
class GeoQuery:
    lat: float
    lng: float
    radius_meters: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


class ProximityAugmenter:
    """Stateless distance annotation and nearby selection."""

    @staticmethod
    def _located(candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
        return [c for c in candidates if c.item.location is not None]

    def annotate_distances(
        self,
        candidates: Sequence[ScoredCandidate],
        center: Tuple[float, float],
    ) -> None:
        """Set ``distance_meters`` in place on every candidate with coordinates."""
        located = self._located(candidates)
        if not located:
            return
        lats = np.array([c.item.location.lat for c in located])
        lngs = np.array([c.item.location.lng for c in located])
        distances = convert_numpy(haversine_meters(center[0], center[1], lats, lngs))
        for candidate, distance in zip(located, distances):
            candidate.distance_meters = distance

    def nearby(
        self,
        candidates: Sequence[ScoredCandidate],
        query: GeoQuery,
        limit: Optional[int] = None,
    ) -> List[ScoredCandidate]:
        """Candidates within the radius, sorted by distance then id."""
        located = self._located(candidates)
        if not located:
            return []

        lats = np.array([c.item.location.lat for c in located])
        lngs = np.array([c.item.location.lng for c in located])

        min_lat, max_lat, min_lng, max_lng = bounding_box(query.lat, query.lng, query.radius_meters)
        mask = (lats >= min_lat) & (lats <= max_lat)
        # Skip the longitude box when it would wrap the antimeridian
        if min_lng >= -180.0 and max_lng <= 180.0:
            mask &= (lngs >= min_lng) & (lngs <= max_lng)

        idx = np.flatnonzero(mask)
        if idx.size == 0:
            return []

        distances = haversine_meters(query.lat, query.lng, lats[idx], lngs[idx])
        inside = [
            (float(d), located[i])
            for i, d in zip(idx.tolist(), distances.tolist())
            if d <= query.radius_meters
        ]
        inside.sort(key=lambda pair: (pair[0], pair[1].item_id))

        result = []
        for distance, candidate in inside:
            candidate.distance_meters = distance
            result.append(candidate)
        if limit is not None:
            result = result[:limit]
        return result
