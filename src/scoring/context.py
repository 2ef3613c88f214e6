"""
Scoring context and result types.

ScoringContext is built once per request by the pipeline and passed to
the scorer for every candidate. ScoreBreakdown is what the scorer
returns: the six sub-scores, from which the total and the reason tag
are derived.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from config.constants import CompanionType
from feed.models import UserConstraints, UserPreferences


class ReasonTag(str, Enum):
    """Human-readable explanation attached to a ranked item."""
    CATEGORY_MATCH = "category match"
    VIBE_MATCH = "vibe match"
    COMPANION_MATCH = "companion match"
    BUDGET_MATCH = "budget match"
    NEIGHBORHOOD_MATCH = "neighborhood match"
    TIMING_MATCH = "timing match"


# Tie-break order when two sub-scores are equal
REASON_PRIORITY = (
    ("category", ReasonTag.CATEGORY_MATCH),
    ("vibe", ReasonTag.VIBE_MATCH),
    ("companion", ReasonTag.COMPANION_MATCH),
    ("budget", ReasonTag.BUDGET_MATCH),
    ("neighborhood", ReasonTag.NEIGHBORHOOD_MATCH),
    ("timing", ReasonTag.TIMING_MATCH),
)


@dataclass
class ScoreBreakdown:
    """Raw (unrounded) sub-scores for one candidate."""
    category: float = 0.0
    neighborhood: float = 0.0
    vibe: float = 0.0
    companion: float = 0.0
    budget: float = 0.0
    timing: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.category + self.neighborhood + self.vibe
            + self.companion + self.budget + self.timing
        )

    @property
    def reason_tag(self) -> Optional[ReasonTag]:
        """Highest positive sub-score; None if nothing contributed."""
        best_tag = None
        best_value = 0.0
        for name, tag in REASON_PRIORITY:
            value = getattr(self, name)
            if value > best_value:
                best_value = value
                best_tag = tag
        return best_tag

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name, _ in REASON_PRIORITY}


@dataclass
class ScoringContext:
    """
    Everything about the requesting user that scoring needs.

    ``going_with`` is the companion type chosen for this request; when
    set it takes precedence over the profile's companion affinity.
    """
    user_id: str
    preferences: UserPreferences
    constraints: UserConstraints
    now: datetime
    going_with: Optional[CompanionType] = None
    # Populated by the pipeline when the request carries a center
    geo_center: Optional[tuple] = None
    neighborhoods: frozenset = field(default_factory=frozenset)

    @property
    def companion(self) -> Optional[CompanionType]:
        return self.going_with or self.preferences.companion_affinity

    @classmethod
    def build(
        cls,
        preferences: UserPreferences,
        constraints: UserConstraints,
        now: datetime,
        going_with: Optional[CompanionType] = None,
        geo_center: Optional[tuple] = None,
    ) -> "ScoringContext":
        hoods = {n.strip().lower() for n in constraints.neighborhoods if n and n.strip()}
        if constraints.home_neighborhood and constraints.home_neighborhood.strip():
            hoods.add(constraints.home_neighborhood.strip().lower())
        return cls(
            user_id=preferences.user_id,
            preferences=preferences,
            constraints=constraints,
            now=now,
            going_with=going_with,
            geo_center=geo_center,
            neighborhoods=frozenset(hoods),
        )
