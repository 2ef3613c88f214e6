"""
Pytest configuration and shared fixtures for the feed engine tests.
"""
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

# Load environment variables
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))


# Monday, 12:00 UTC
NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_item(item_id: str = "item-1", **overrides):
    """Build a CandidateItem with sensible defaults."""
    from feed.models import CandidateItem

    data = {
        "id": item_id,
        "city_id": "nyc",
        "category": "OTHER",
        "title": f"Item {item_id}",
        "tags": ["misc"],
        "created_at": NOW - timedelta(days=1),
    }
    data.update(overrides)
    return CandidateItem(**data)


# ============================================================================
# Fixtures: Test Data Factories
# ============================================================================

@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def sample_items() -> list:
    """A small mixed city: two events tonight, a place, and an out-of-city item."""
    return [
        make_item(
            "jazz", category="LIVE_MUSIC", tags=["jazz", "live-music"],
            venue_name="Blue Note", price="$25",
            start_time=NOW + timedelta(hours=8),
            rating=4.6, rating_count=120,
        ),
        make_item(
            "yoga", category="FITNESS", tags=["yoga"],
            venue_name="Studio One", price="Free",
            start_time=NOW + timedelta(days=1),
            rating=4.2, rating_count=30,
        ),
        make_item(
            "cafe", category="COFFEE", tags=["coffee"],
            venue_name="Bean There", price="$",
            rating=4.8, rating_count=400,
        ),
        make_item("boston-gig", city_id="bos", category="LIVE_MUSIC"),
    ]


# ============================================================================
# Fixtures: Stores and pipeline
# ============================================================================

@pytest.fixture
def candidate_repo(sample_items):
    from feed.repositories import InMemoryCandidateRepository
    return InMemoryCandidateRepository(sample_items)


@pytest.fixture
def profile_store():
    from feed.repositories import InMemoryProfileStore
    return InMemoryProfileStore()


@pytest.fixture
def history_store():
    from feed.repositories import InMemoryHistoryStore
    return InMemoryHistoryStore()


@pytest.fixture
def view_store():
    from feed.view_store import InMemoryFeedViewStore
    return InMemoryFeedViewStore()


@pytest.fixture
def pipeline(candidate_repo, profile_store, history_store, view_store):
    from feed.pipeline import FeedRankingPipeline
    return FeedRankingPipeline(
        candidate_repo, profile_store, history_store, view_store,
        clock=lambda: NOW,
    )
