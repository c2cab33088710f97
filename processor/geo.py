"""Great-circle distance helpers."""
import math
from typing import Optional

EARTH_RADIUS_MILES = 3958.8


def _is_finite_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def distance_miles(lat1, lon1, lat2, lon2) -> Optional[float]:
    """
    Haversine distance between two coordinates.

    Args:
        lat1: Latitude of the first point in degrees
        lon1: Longitude of the first point in degrees
        lat2: Latitude of the second point in degrees
        lon2: Longitude of the second point in degrees

    Returns:
        Distance in miles, or None if any input is missing or non-finite
    """
    if not all(_is_finite_number(value) for value in (lat1, lon1, lat2, lon2)):
        return None
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c
