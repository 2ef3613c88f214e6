"""
Core module for cross-cutting concerns.

This module provides:
- Structured logging configuration
- The engine's error taxonomy
- Tag, price and distance helpers
"""

from core.logging import configure_logging, get_logger
from core.errors import (
    CandidateScoringError,
    FeedEngineError,
    InvalidInput,
    RepositoryUnavailable,
)
from core.utils import haversine_meters, normalize_tags, parse_price

__all__ = [
    "configure_logging",
    "get_logger",
    "CandidateScoringError",
    "FeedEngineError",
    "InvalidInput",
    "RepositoryUnavailable",
    "haversine_meters",
    "normalize_tags",
    "parse_price",
]
