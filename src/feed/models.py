"""
Pydantic models for the feed ranking engine.

Models cover:
- Candidate items (events and places) as served by the candidate repository
- User preference profile and constraints
- Interaction, feedback and feed-view history records
- Ranked output: items, pages and acknowledgements
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from config.constants import (
    BudgetTier,
    Category,
    CompanionType,
    DayOfWeek,
    FeedbackType,
    InteractionStatus,
    MAX_FEEDBACK_TAGS,
    PreferenceType,
    TimeOfDay,
    get_category_info,
)
from core.utils import normalize_tags, parse_price


# =============================================================================
# Candidates
# =============================================================================

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GeoPoint(BaseModel):
    """WGS84 coordinate."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class CandidateItem(BaseModel):
    """
    A rankable event or place.

    Places have no start time ("timeless"). Tags, vibe tags and companion
    tags are stored lowercase and de-duplicated; an item arriving without
    tags inherits its category's default tags.
    """
    id: str
    city_id: str
    category: Category = Category.OTHER
    title: str = ""
    tags: List[str] = Field(default_factory=list)
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    neighborhood: Optional[str] = None
    location: Optional[GeoPoint] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    price: Optional[str] = None              # "Free", "$25-$40", "$$"
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    rating_count: int = Field(default=0, ge=0)
    save_count: int = Field(default=0, ge=0)
    vibe_tags: List[str] = Field(default_factory=list)
    companion_tags: List[str] = Field(default_factory=list)
    created_at: datetime

    @field_validator("tags", "vibe_tags", "companion_tags", mode="before")
    @classmethod
    def _normalize(cls, v):
        return normalize_tags(v)

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def _inherit_default_tags(self) -> "CandidateItem":
        if not self.tags:
            self.tags = list(get_category_info(self.category).default_tags)
        return self

    @property
    def is_timeless(self) -> bool:
        return self.start_time is None

    @property
    def parsed_price(self) -> Optional[float]:
        return parse_price(self.price)

    @property
    def is_free(self) -> bool:
        return self.parsed_price == 0.0

    @property
    def popularity(self) -> float:
        """rating x ln(1 + rating_count) + saves."""
        rating = self.rating or 0.0
        return rating * math.log1p(self.rating_count) + self.save_count

    def has_ended(self, now: datetime) -> bool:
        """True for events whose end (or start, when no end) is before now."""
        if self.is_timeless:
            return False
        return (self.end_time or self.start_time) < now


# =============================================================================
# User profile
# =============================================================================

class CategoryPreference(BaseModel):
    category: Category
    preference: PreferenceType
    intensity: int = Field(default=3, ge=1, le=5)


class UserPreferences(BaseModel):
    """Per-user taste profile. At most one entry per category."""
    user_id: str
    categories: List[CategoryPreference] = Field(default_factory=list)
    vibe_affinities: List[str] = Field(default_factory=list)
    companion_affinity: Optional[CompanionType] = None

    @field_validator("vibe_affinities", mode="before")
    @classmethod
    def _normalize_vibes(cls, v):
        return normalize_tags(v)

    @field_validator("categories")
    @classmethod
    def _one_per_category(cls, v: List[CategoryPreference]) -> List[CategoryPreference]:
        seen = set()
        for pref in v:
            if pref.category in seen:
                raise ValueError(f"duplicate preference for {pref.category.value}")
            seen.add(pref.category)
        return v

    def for_category(self, category: Category) -> Optional[CategoryPreference]:
        for pref in self.categories:
            if pref.category == category:
                return pref
        return None


class UserConstraints(BaseModel):
    """
    Hard and soft constraints. One per user, created lazily with these
    defaults the first time a feed is personalized.
    """
    user_id: str
    preferred_days: List[DayOfWeek] = Field(default_factory=list)
    preferred_times: List[TimeOfDay] = Field(default_factory=list)
    budget_max: BudgetTier = BudgetTier.ANY
    home_neighborhood: Optional[str] = None
    neighborhoods: List[str] = Field(default_factory=list)
    free_events_only: bool = False
    discovery_mode: bool = False
    travel_radius_meters: Optional[float] = Field(default=None, gt=0)
    home_location: Optional[GeoPoint] = None


# =============================================================================
# History
# =============================================================================

class InteractionRecord(BaseModel):
    """One active status per (user, item). A new status overwrites."""
    user_id: str
    item_id: str
    status: Optional[InteractionStatus] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class FeedbackSignal(BaseModel):
    """Append-only MORE / LESS / HIDE signal with the item's captured traits."""
    user_id: str
    item_id: str
    feedback_type: FeedbackType
    category: Optional[Category] = None
    tags: List[str] = Field(default_factory=list)
    venue_name: Optional[str] = None
    created_at: datetime

    @field_validator("tags", mode="before")
    @classmethod
    def _cap_tags(cls, v):
        return normalize_tags(v)[:MAX_FEEDBACK_TAGS]

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class FeedViewRecord(BaseModel):
    user_id: str
    item_id: str
    seen_count: int = Field(default=0, ge=0)
    last_shown_at: Optional[datetime] = None
    interacted: bool = False


# =============================================================================
# Output
# =============================================================================

class EmptyReason(str, Enum):
    NO_CANDIDATES = "no_candidates"
    ALL_FILTERED = "all_filtered"


class RankedItem(BaseModel):
    """One feed entry with its explanation metadata."""
    item_id: str
    score: int
    reason_tag: Optional[str] = None
    is_exploration_pick: bool = False
    is_trending_pick: bool = False
    distance_meters: Optional[float] = None
    category: Category
    # Debugging / explanation
    breakdown: Dict[str, float] = Field(default_factory=dict)
    feedback_multiplier: float = 1.0
    decay_multiplier: float = 1.0


class FeedPage(BaseModel):
    items: List[RankedItem] = Field(default_factory=list)
    nearby: List[RankedItem] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    degraded: bool = False
    empty_reason: Optional[EmptyReason] = None


class Ack(BaseModel):
    ok: bool = True
    user_id: str
    item_id: str
