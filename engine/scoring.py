from math import radians, sin, cos, sqrt, asin
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from persistence.records import LatLng, MapBounds

EARTH_RADIUS_KM = 6371.071
SCALE_DIVISOR = 7.458421
SCORE_DECAY = 0.99866017
MAX_SCORE = 5000


def haversine_distance(a: 'LatLng', b: 'LatLng') -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        a, b: Points in degrees

    Returns:
        Distance in kilometers
    """
    lat1 = radians(a.lat)
    lat2 = radians(b.lat)
    dlat = lat2 - lat1
    dlon = radians(b.lng - a.lng)

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(h))


def calculate_scale(bounds: 'MapBounds') -> float:
    """Map scale: the bounds diagonal in km, shrunk to the scoring curve"""
    return haversine_distance(bounds.min, bounds.max) / SCALE_DIVISOR


def calculate_score(distance_m: float, scale: float) -> int:
    """
    Score a guess from its distance to the target.

    Args:
        distance_m: Distance in metres
        scale: Map scale from calculate_scale()

    Returns:
        Score from 0 to MAX_SCORE
    """
    if scale <= 0:
        # Degenerate bounds: only an exact hit scores
        return MAX_SCORE if distance_m == 0 else 0
    return round(MAX_SCORE * SCORE_DECAY ** (distance_m / scale))
