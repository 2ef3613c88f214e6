"""
Core Utility Functions.

Tag normalization, price parsing and great-circle distance helpers shared
by the scoring and feed packages.
"""

import re
from typing import Any, Iterable, List, Optional, Set, Tuple, Union

import numpy as np

from config.constants import FREE_PRICE_DESCRIPTORS, PRICE_LEVEL_VALUES


# =============================================================================
# Tags
# =============================================================================

def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """
    Lowercase, strip and de-duplicate tags, keeping first-seen order.

    Examples:
        >>> normalize_tags(["Jazz", " jazz", "Live-Music", ""])
        ['jazz', 'live-music']
    """
    if not tags:
        return []
    seen: Set[str] = set()
    result: List[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        norm = tag.strip().lower()
        if norm and norm not in seen:
            seen.add(norm)
            result.append(norm)
    return result


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# =============================================================================
# Price
# =============================================================================

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_PRICE_LEVEL_RE = re.compile(r"^\$+$")


def parse_price(descriptor: Optional[str]) -> Optional[float]:
    """
    Parse a free-form price descriptor into a single comparable number.

    - "free", "$0", "0" -> 0.0
    - "$25-$40", "From $12" -> the largest number (40.0, 12.0)
    - "$" .. "$$$$" price levels -> representative price
    - anything else -> None (unknown)

    Examples:
        >>> parse_price("Free")
        0.0
        >>> parse_price("$20 - $35")
        35.0
        >>> parse_price("$$")
        40.0
        >>> parse_price("Donation") is None
        True
    """
    if descriptor is None:
        return None
    text = descriptor.strip().lower()
    if not text:
        return None
    if text in FREE_PRICE_DESCRIPTORS:
        return 0.0
    if _PRICE_LEVEL_RE.match(text):
        return PRICE_LEVEL_VALUES.get(min(len(text), 4))
    numbers = _NUMBER_RE.findall(text)
    if numbers:
        return max(float(n) for n in numbers)
    if "free" in text:
        return 0.0
    return None


# =============================================================================
# Geo
# =============================================================================

# 3958.8 miles
EARTH_RADIUS_METERS = 6_371_008.8

ArrayLike = Union[float, np.ndarray]


def haversine_meters(
    lat1: ArrayLike,
    lng1: ArrayLike,
    lat2: ArrayLike,
    lng2: ArrayLike,
) -> ArrayLike:
    """
    Great-circle distance in meters.

    Works element-wise on numpy arrays, so a whole candidate set can be
    measured against one center in a single call.
    """
    lat1, lng1, lat2, lng2 = (np.radians(v) for v in (lat1, lng1, lat2, lng2))
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))


def bounding_box(lat: float, lng: float, radius_meters: float) -> Tuple[float, float, float, float]:
    """
    Cheap (min_lat, max_lat, min_lng, max_lng) box around a center.

    Used to discard far candidates before the exact haversine pass.
    """
    angular = radius_meters / EARTH_RADIUS_METERS
    lat_delta = float(np.degrees(angular))
    # Widest longitude span of the circle is asin(sin(d) / cos(lat))
    sin_ratio = np.sin(angular) / max(np.cos(np.radians(lat)), 1e-12)
    if angular >= np.pi / 2 or sin_ratio >= 1.0 or abs(lat) + lat_delta >= 90.0:
        lng_delta = 180.0
    else:
        lng_delta = float(np.degrees(np.arcsin(sin_ratio)))
    return (lat - lat_delta, lat + lat_delta, lng - lng_delta, lng + lng_delta)


def convert_numpy(obj: Any) -> Any:
    """
    Convert numpy types to Python native types.

    Examples:
        >>> convert_numpy(np.float64(1.5))
        1.5
        >>> convert_numpy({'d': np.array([1.0, 2.0])})
        {'d': [1.0, 2.0]}
    """
    if isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {convert_numpy(k): convert_numpy(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy(v) for v in obj]
    return obj
