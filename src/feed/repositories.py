"""
Store interfaces consumed by the feed engine, plus in-memory implementations.

The engine only reads and writes through these interfaces; the storage
technology behind them is the host's concern. The in-memory stores back
the tests and local development, and guard their state with a lock so a
single instance can be shared by concurrent requests.

Interfaces:
- CandidateRepository: active items for a city and time window
- ProfileStore: preferences and (lazily created) constraints
- HistoryStore: interactions and the append-only feedback log
"""

from datetime import datetime
from threading import Lock
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

from config.constants import FeedbackType, InteractionStatus
from core.logging import LoggerMixin
from feed.models import (
    CandidateItem,
    FeedbackSignal,
    InteractionRecord,
    UserConstraints,
    UserPreferences,
)

TimeWindow = Tuple[datetime, datetime]


# =============================================================================
# Interfaces
# =============================================================================

class CandidateRepository(Protocol):
    def fetch_active(
        self, city_id: str, window: Optional[TimeWindow] = None,
    ) -> List[CandidateItem]:
        ...

    def get_item(self, item_id: str) -> Optional[CandidateItem]:
        ...


class ProfileStore(Protocol):
    def get_preferences(self, user_id: str) -> UserPreferences:
        ...

    def get_constraints(self, user_id: str) -> UserConstraints:
        """Return the user's constraints, creating the defaults on first use."""
        ...


class HistoryStore(Protocol):
    def get_interactions(self, user_id: str) -> List[InteractionRecord]:
        ...

    def get_feedback_since(self, user_id: str, since: datetime) -> List[FeedbackSignal]:
        ...

    def get_hidden_item_ids(self, user_id: str) -> Set[str]:
        ...

    def append_feedback(self, signal: FeedbackSignal) -> None:
        ...

    def upsert_interaction(
        self,
        user_id: str,
        item_id: str,
        status: Optional[InteractionStatus],
        now: datetime,
        rating: Optional[int] = None,
        note: Optional[str] = None,
    ) -> InteractionRecord:
        ...


# =============================================================================
# In-memory implementations
# =============================================================================

def overlaps_window(item: CandidateItem, window: Optional[TimeWindow]) -> bool:
    """Timeless places always overlap; events overlap if they run inside the window."""
    if window is None or item.is_timeless:
        return True
    start, end = window
    item_end = item.end_time or item.start_time
    return item.start_time <= end and item_end >= start


class InMemoryCandidateRepository(LoggerMixin):
    """Candidate repository over a fixed item list."""

    def __init__(self, items: Optional[Iterable[CandidateItem]] = None):
        self._items: Dict[str, CandidateItem] = {}
        self._lock = Lock()
        for item in items or ():
            self._items[item.id] = item

    def add(self, item: CandidateItem) -> None:
        with self._lock:
            self._items[item.id] = item

    def fetch_active(
        self, city_id: str, window: Optional[TimeWindow] = None,
    ) -> List[CandidateItem]:
        with self._lock:
            items = list(self._items.values())
        active: List[CandidateItem] = []
        for item in items:
            if item.city_id != city_id:
                continue
            try:
                if overlaps_window(item, window):
                    active.append(item)
            except TypeError as e:
                self.logger.warning("Skipping candidate with bad times", item_id=item.id, error=str(e))
        return active

    def get_item(self, item_id: str) -> Optional[CandidateItem]:
        with self._lock:
            return self._items.get(item_id)


class InMemoryProfileStore(LoggerMixin):
    """Preferences and constraints keyed by user id."""

    def __init__(self):
        self._preferences: Dict[str, UserPreferences] = {}
        self._constraints: Dict[str, UserConstraints] = {}
        self._lock = Lock()

    def set_preferences(self, preferences: UserPreferences) -> None:
        with self._lock:
            self._preferences[preferences.user_id] = preferences

    def set_constraints(self, constraints: UserConstraints) -> None:
        with self._lock:
            self._constraints[constraints.user_id] = constraints

    def get_preferences(self, user_id: str) -> UserPreferences:
        with self._lock:
            prefs = self._preferences.get(user_id)
        return prefs if prefs is not None else UserPreferences(user_id=user_id)

    def get_constraints(self, user_id: str) -> UserConstraints:
        with self._lock:
            constraints = self._constraints.get(user_id)
            if constraints is None:
                constraints = UserConstraints(user_id=user_id)
                self._constraints[user_id] = constraints
                self.logger.debug("Created default constraints", user_id=user_id)
            return constraints

    def has_constraints(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._constraints


class InMemoryHistoryStore(LoggerMixin):
    """Interaction records (one per user x item) and the feedback log."""

    def __init__(self):
        self._interactions: Dict[Tuple[str, str], InteractionRecord] = {}
        self._feedback: List[FeedbackSignal] = []
        self._lock = Lock()

    def get_interactions(self, user_id: str) -> List[InteractionRecord]:
        with self._lock:
            return [r for (uid, _), r in self._interactions.items() if uid == user_id]

    def get_feedback_since(self, user_id: str, since: datetime) -> List[FeedbackSignal]:
        with self._lock:
            return [
                s for s in self._feedback
                if s.user_id == user_id and s.created_at >= since
            ]

    def get_hidden_item_ids(self, user_id: str) -> Set[str]:
        with self._lock:
            return {
                s.item_id for s in self._feedback
                if s.user_id == user_id and s.feedback_type == FeedbackType.HIDE
            }

    def append_feedback(self, signal: FeedbackSignal) -> None:
        with self._lock:
            self._feedback.append(signal)

    def upsert_interaction(
        self,
        user_id: str,
        item_id: str,
        status: Optional[InteractionStatus],
        now: datetime,
        rating: Optional[int] = None,
        note: Optional[str] = None,
    ) -> InteractionRecord:
        key = (user_id, item_id)
        with self._lock:
            existing = self._interactions.get(key)
            if existing is None:
                record = InteractionRecord(
                    user_id=user_id, item_id=item_id, status=status,
                    rating=rating, note=note, created_at=now, updated_at=now,
                )
            else:
                record = existing.model_copy(update={
                    "status": status if status is not None else existing.status,
                    "rating": rating if rating is not None else existing.rating,
                    "note": note if note is not None else existing.note,
                    "updated_at": now,
                })
            self._interactions[key] = record
        return record
