"""
Geographic helpers for carpool proximity scoring.
"""

import math

EARTH_RADIUS_MILES = 3958.8


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in miles
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def proximity_band_points(distance_miles: float) -> float:
    """
    Banded proximity score.

    <1 mi -> 35, 1-3 mi -> 25, 3-5 mi -> 15, >5 mi -> 0
    """
    if distance_miles < 1.0:
        return 35.0
    if distance_miles <= 3.0:
        return 25.0
    if distance_miles <= 5.0:
        return 15.0
    return 0.0
