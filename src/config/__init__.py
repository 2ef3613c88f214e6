"""
Configuration module for the feed ranking engine.

This module provides centralized configuration management using pydantic-settings,
plus the closed domain enums and the category lookup table.

Usage:
    from config import get_settings, Category

    settings = get_settings()
    weight = settings.weight_category
"""

from config.constants import (
    BudgetTier,
    Category,
    CATEGORY_TABLE,
    CompanionType,
    DayOfWeek,
    FeedbackType,
    InteractionStatus,
    PreferenceType,
    TimeOfDay,
    get_category_info,
)
from config.settings import Settings, get_settings, get_settings_for_testing

__all__ = [
    "BudgetTier",
    "Category",
    "CATEGORY_TABLE",
    "CompanionType",
    "DayOfWeek",
    "FeedbackType",
    "InteractionStatus",
    "PreferenceType",
    "TimeOfDay",
    "get_category_info",
    "Settings",
    "get_settings",
    "get_settings_for_testing",
]
