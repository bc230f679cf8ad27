# utils/geofence.py

from math import radians, sin, cos, sqrt, atan2
from typing import NamedTuple, Optional

EARTH_RADIUS_M = 6371000


class GeoPoint(NamedTuple):
    lat: float
    lng: float


def haversine_dist(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    φ1, φ2 = radians(lat1), radians(lat2)
    Δφ = radians(lat2 - lat1)
    Δλ = radians(lng2 - lng1)

    a = sin(Δφ/2)**2 + cos(φ1) * cos(φ2) * sin(Δλ/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance(point_a: GeoPoint, point_b: GeoPoint) -> float:
    """Great-circle surface distance in meters between two points."""
    return haversine_dist(point_a.lat, point_a.lng, point_b.lat, point_b.lng)


def make_point(lat: Optional[float], lng: Optional[float]) -> Optional[GeoPoint]:
    # A half-specified coordinate is treated as no location at all
    if lat is None or lng is None:
        return None
    return GeoPoint(lat, lng)
