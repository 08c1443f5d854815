"""Geographic utility functions — pure Python, no external deps.

Points follow the X = longitude, Y = latitude convention. Callers always
pass (latitude, longitude); ``make_point`` is the only place that flips
the order.
"""

from __future__ import annotations

import math
from typing import NamedTuple

EARTH_MEAN_RADIUS_KM = 6371.0088


class Point(NamedTuple):
    """Geographic point. X is longitude, Y is latitude (WGS84 degrees)."""

    x: float
    y: float

    @property
    def longitude(self) -> float:
        return self.x

    @property
    def latitude(self) -> float:
        return self.y


class Circle(NamedTuple):
    """Small circle on the sphere with an angular radius in degrees."""

    center: Point
    radius_deg: float


def make_point(latitude: float, longitude: float) -> Point:
    return Point(x=longitude, y=latitude)  # X - longitude, Y - latitude


def make_circle(latitude: float, longitude: float, radius_deg: float) -> Circle:
    return Circle(center=make_point(latitude, longitude), radius_deg=radius_deg)


def degrees_for_radius_km(radius_km: float, earth_radius_km: float = EARTH_MEAN_RADIUS_KM) -> float:
    """Angular radius (degrees) of an arc of ``radius_km`` on the sphere."""
    return math.degrees(radius_km / earth_radius_km)


def km_for_degrees(degrees: float, earth_radius_km: float = EARTH_MEAN_RADIUS_KM) -> float:
    return math.radians(degrees) * earth_radius_km


def _central_angle(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine central angle in radians."""
    rlat1, rlon1 = math.radians(lat1), math.radians(lon1)
    rlat2, rlon2 = math.radians(lat2), math.radians(lon2)

    dlat = rlat2 - rlat1
    dlon = rlon2 - rlon1

    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    # Rounding can push `a` just past 1 for near-antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_km(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    earth_radius_km: float = EARTH_MEAN_RADIUS_KM,
) -> float:
    """Great-circle distance between two points on Earth in kilometers.

    Uses the Haversine formula. Inputs are WGS84 decimal degrees.
    """
    return earth_radius_km * _central_angle(lat1, lon1, lat2, lon2)


def angular_distance_deg(p1: Point, p2: Point) -> float:
    """Central angle between two points, in degrees."""
    return math.degrees(_central_angle(p1.y, p1.x, p2.y, p2.x))


def distance_km(p1: Point, p2: Point, earth_radius_km: float = EARTH_MEAN_RADIUS_KM) -> float:
    return haversine_km(p1.y, p1.x, p2.y, p2.x, earth_radius_km)
