"""
Domain constants and lookup tables.

These are values that don't change based on environment but are
referenced across the codebase. The category table lives here and only
here: display label, color and default tags for every category.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


# =============================================================================
# Categories
# =============================================================================

class Category(str, Enum):
    """Closed set of feed categories."""
    ART = "ART"
    LIVE_MUSIC = "LIVE_MUSIC"
    BARS = "BARS"
    FOOD = "FOOD"
    COFFEE = "COFFEE"
    OUTDOORS = "OUTDOORS"
    FITNESS = "FITNESS"
    SEASONAL = "SEASONAL"
    POPUP = "POPUP"
    RESTAURANT = "RESTAURANT"
    ACTIVITY_VENUE = "ACTIVITY_VENUE"
    OTHER = "OTHER"


@dataclass(frozen=True)
class CategoryInfo:
    """Display metadata for one category."""
    label: str
    color: str
    emoji: str
    default_tags: Tuple[str, ...] = ()


CATEGORY_TABLE: Dict[Category, CategoryInfo] = {
    Category.ART: CategoryInfo(
        "Art", "bg-purple-100 text-purple-700", "🎨",
        ("art", "gallery", "exhibition"),
    ),
    Category.LIVE_MUSIC: CategoryInfo(
        "Live Music", "bg-pink-100 text-pink-700", "🎵",
        ("live-music", "concert"),
    ),
    Category.BARS: CategoryInfo(
        "Bars", "bg-amber-100 text-amber-700", "🍸",
        ("bar", "drinks", "happy-hour"),
    ),
    Category.FOOD: CategoryInfo(
        "Food", "bg-orange-100 text-orange-700", "🍽️",
        ("food",),
    ),
    Category.COFFEE: CategoryInfo(
        "Coffee", "bg-yellow-100 text-yellow-700", "☕",
        ("coffee",),
    ),
    Category.OUTDOORS: CategoryInfo(
        "Outdoors", "bg-green-100 text-green-700", "🌲",
        ("outdoor", "park"),
    ),
    Category.FITNESS: CategoryInfo(
        "Fitness", "bg-blue-100 text-blue-700", "💪",
        ("fitness",),
    ),
    Category.SEASONAL: CategoryInfo(
        "Seasonal", "bg-red-100 text-red-700", "🎄",
        ("seasonal", "festival"),
    ),
    Category.POPUP: CategoryInfo(
        "Pop-up", "bg-indigo-100 text-indigo-700", "✨",
        ("popup",),
    ),
    Category.RESTAURANT: CategoryInfo(
        "Restaurant", "bg-orange-100 text-orange-700", "🍽️",
        ("restaurant", "dinner"),
    ),
    Category.ACTIVITY_VENUE: CategoryInfo(
        "Experience", "bg-cyan-100 text-cyan-700", "🎯",
        ("activity",),
    ),
    Category.OTHER: CategoryInfo(
        "Other", "bg-slate-100 text-slate-700", "📍",
    ),
}


def get_category_info(category: Category) -> CategoryInfo:
    """Look up display metadata for a category."""
    return CATEGORY_TABLE[category]


# =============================================================================
# Preferences and constraints
# =============================================================================

class PreferenceType(str, Enum):
    LIKE = "LIKE"
    DISLIKE = "DISLIKE"


class CompanionType(str, Enum):
    """Who the user is going with."""
    SOLO = "solo"
    DATE = "date"
    FRIENDS = "friends"
    FAMILY = "family"


class DayOfWeek(str, Enum):
    # Declaration order matches datetime.weekday()
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


WEEKDAY_ORDER: Tuple[DayOfWeek, ...] = tuple(DayOfWeek)


class TimeOfDay(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    EVENING = "EVENING"
    LATE_NIGHT = "LATE_NIGHT"


def time_of_day_for_hour(hour: int) -> TimeOfDay:
    """Bucket a wall-clock hour (0-23)."""
    if 6 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.LATE_NIGHT


class BudgetTier(str, Enum):
    FREE = "FREE"
    UNDER_25 = "UNDER_25"
    UNDER_50 = "UNDER_50"
    UNDER_100 = "UNDER_100"
    ANY = "ANY"


# None = no ceiling
BUDGET_CEILINGS: Dict[BudgetTier, Optional[float]] = {
    BudgetTier.FREE: 0.0,
    BudgetTier.UNDER_25: 25.0,
    BudgetTier.UNDER_50: 50.0,
    BudgetTier.UNDER_100: 100.0,
    BudgetTier.ANY: None,
}


# "$".."$$$$" price-level descriptors -> representative price
PRICE_LEVEL_VALUES: Dict[int, float] = {
    1: 15.0,
    2: 40.0,
    3: 80.0,
    4: 150.0,
}

FREE_PRICE_DESCRIPTORS: FrozenSet[str] = frozenset({"free", "$0", "0"})


# =============================================================================
# History
# =============================================================================

class FeedbackType(str, Enum):
    MORE = "MORE"
    LESS = "LESS"
    HIDE = "HIDE"


class InteractionStatus(str, Enum):
    WANT = "WANT"
    SAVED = "SAVED"
    DONE = "DONE"
    PASS = "PASS"


MAX_FEEDBACK_TAGS = 3


# =============================================================================
# Tag families
# =============================================================================

COMPANION_TAG_FAMILIES: Dict[CompanionType, FrozenSet[str]] = {
    CompanionType.SOLO: frozenset({
        "solo-friendly", "self-care", "self-paced", "meditation", "yoga",
        "workshop", "class", "reading", "coffee", "museum", "gallery",
        "exhibition",
    }),
    CompanionType.DATE: frozenset({
        "romantic", "date night", "date-night", "date-friendly", "intimate",
        "upscale", "dinner", "sunset", "couples",
    }),
    CompanionType.FRIENDS: frozenset({
        "group", "friends-group", "social", "party", "trivia", "game-night",
        "brunch", "happy-hour", "bar-crawl", "festival", "concert",
    }),
    CompanionType.FAMILY: frozenset({
        "family-friendly", "kid-friendly", "all-ages", "children", "family",
        "park", "zoo", "aquarium",
    }),
}

# Categories that suit a companion type regardless of tags. Solo has none.
COMPANION_CATEGORY_FAMILIES: Dict[CompanionType, FrozenSet[Category]] = {
    CompanionType.SOLO: frozenset(),
    CompanionType.DATE: frozenset({
        Category.ART, Category.FOOD, Category.COFFEE, Category.LIVE_MUSIC,
        Category.SEASONAL, Category.RESTAURANT,
    }),
    CompanionType.FRIENDS: frozenset({
        Category.BARS, Category.LIVE_MUSIC, Category.FOOD, Category.OUTDOORS,
        Category.FITNESS, Category.POPUP,
    }),
    CompanionType.FAMILY: frozenset({
        Category.ART, Category.OUTDOORS, Category.SEASONAL, Category.FOOD,
        Category.ACTIVITY_VENUE,
    }),
}

VIBE_TAG_FAMILIES: Dict[str, FrozenSet[str]] = {
    "chill": frozenset({
        "chill", "relaxed", "low-key", "casual", "acoustic", "cozy",
        "brunch", "yoga", "meditation", "spa", "self-care",
    }),
    "moderate": frozenset({
        "moderate", "fun", "social", "dinner", "live-music", "comedy",
        "trivia", "workshop", "outdoor",
    }),
    "high-energy": frozenset({
        "high-energy", "party", "club", "dancing", "festival", "concert",
        "rave", "sports", "adventure", "edm", "electronic",
    }),
}
