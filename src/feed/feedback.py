"""
Feedback Adjuster

Turns a user's recent MORE / LESS signals into a multiplicative factor
per candidate. Each signal captured the item's category, up to three of
its tags and its venue at the moment it was given; a candidate sharing
those traits inherits the adjustment.

    factor(net) = 1 + clamp(net * step, -max_adjust, +max_adjust)
    net         = MORE count - LESS count

The category, tag and venue factors are multiplied together and the
product is clamped to the same [1 - max_adjust, 1 + max_adjust] bounds.
HIDE is not a factor: hidden items are removed by the hard filters.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable

from config.constants import Category, FeedbackType
from core.utils import clamp
from feed.models import CandidateItem, FeedbackSignal


@dataclass(frozen=True)
class FeedbackConfig:
    window_days: int = 90
    step: float = 0.05
    max_adjust: float = 0.5

    def __post_init__(self):
        if self.step <= 0:
            raise ValueError("step must be positive")
        if not 0 < self.max_adjust < 1:
            raise ValueError("max_adjust must be in (0, 1)")

    @property
    def lower(self) -> float:
        return 1.0 - self.max_adjust

    @property
    def upper(self) -> float:
        return 1.0 + self.max_adjust


DEFAULT_FEEDBACK_CONFIG = FeedbackConfig()


@dataclass
class FeedbackProfile:
    """Net MORE-minus-LESS counts per trait."""
    categories: Dict[Category, int] = field(default_factory=lambda: defaultdict(int))
    tags: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    venues: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    signal_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.signal_count == 0


def _venue_key(name: str) -> str:
    return name.strip().lower()


def apply_multiplier(score: float, multiplier: float) -> float:
    """
    Scale a score by a multiplier around 1.

    Negative scores are scaled by the mirrored factor (2 - m), so a boost
    never deepens a penalty and a reduction never lifts one.
    """
    if score >= 0:
        return score * multiplier
    return score * (2.0 - multiplier)


class FeedbackAdjuster:
    """Stateless; build a profile per request and reuse it per candidate."""

    def __init__(self, config: FeedbackConfig = None):
        self.config = config or DEFAULT_FEEDBACK_CONFIG

    def window_start(self, now: datetime) -> datetime:
        return now - timedelta(days=self.config.window_days)

    def build_profile(self, signals: Iterable[FeedbackSignal]) -> FeedbackProfile:
        profile = FeedbackProfile()
        for signal in signals:
            if signal.feedback_type == FeedbackType.MORE:
                delta = 1
            elif signal.feedback_type == FeedbackType.LESS:
                delta = -1
            else:
                continue
            profile.signal_count += 1
            if signal.category is not None:
                profile.categories[signal.category] += delta
            for tag in signal.tags:
                profile.tags[tag] += delta
            if signal.venue_name and signal.venue_name.strip():
                profile.venues[_venue_key(signal.venue_name)] += delta
        return profile

    def factor(self, net: int) -> float:
        cfg = self.config
        return 1.0 + clamp(net * cfg.step, -cfg.max_adjust, cfg.max_adjust)

    def multiplier(self, item: CandidateItem, profile: FeedbackProfile) -> float:
        """Combined category x tag x venue factor for one candidate."""
        if profile.is_empty:
            return 1.0

        product = 1.0
        net = profile.categories.get(item.category)
        if net:
            product *= self.factor(net)

        for tag in item.tags:
            net = profile.tags.get(tag)
            if net:
                product *= self.factor(net)

        if item.venue_name and item.venue_name.strip():
            net = profile.venues.get(_venue_key(item.venue_name))
            if net:
                product *= self.factor(net)

        return clamp(product, self.config.lower, self.config.upper)

    def adjust(self, score: float, item: CandidateItem, profile: FeedbackProfile) -> float:
        return apply_multiplier(score, self.multiplier(item, profile))
