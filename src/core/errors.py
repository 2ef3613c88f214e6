"""
Error taxonomy for the feed engine.

Only InvalidInput ever reaches the host: every other failure is turned
into a degraded or empty page by the orchestrator, and logged.
"""

from typing import Optional


class FeedEngineError(Exception):
    """Base class for every error raised by the feed engine."""


class InvalidInput(FeedEngineError, ValueError):
    """Malformed request. Raised before any repository is touched."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RepositoryUnavailable(FeedEngineError):
    """A store failed or timed out while serving a read or a write."""

    def __init__(self, dependency: str, message: str = ""):
        self.dependency = dependency
        super().__init__(f"{dependency} unavailable" + (f": {message}" if message else ""))


class CandidateScoringError(FeedEngineError):
    """A single candidate could not be scored; it is skipped."""

    def __init__(self, item_id: str, message: str = ""):
        self.item_id = item_id
        super().__init__(f"failed to score {item_id}" + (f": {message}" if message else ""))
