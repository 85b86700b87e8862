"""Geodesic helpers and the route distance calculator.

Every helper shares EARTH_RADIUS_M so offsets and distances agree with each
other at pedestrian scale.
"""
import math
from typing import List, Sequence

from .models import Coordinate

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_MILE = 1609.34


def _wrap_longitude(lon: float) -> float:
    if -180.0 <= lon <= 180.0:
        return lon
    return (lon + 180.0) % 360.0 - 180.0


def offset(origin: Coordinate, meters_east: float, meters_north: float) -> Coordinate:
    """Move ``origin`` by a metric offset using an equirectangular approximation.

    Not guarded near the poles, where cos(lat) goes to zero.
    """
    d_lat = meters_north / EARTH_RADIUS_M
    d_lon = meters_east / (EARTH_RADIUS_M * math.cos(math.radians(origin.latitude)))
    return Coordinate(
        latitude=origin.latitude + math.degrees(d_lat),
        longitude=_wrap_longitude(origin.longitude + math.degrees(d_lon)),
    )


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great circle (Haversine) distance between two points."""
    lon1, lat1, lon2, lat2 = map(math.radians, [a.longitude, a.latitude, b.longitude, b.latitude])
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def bearing_degrees(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from ``a`` to ``b``, clockwise from north, in [0, 360)."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    x = math.sin(dlon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


# --- Route Distance Calculator ---

def segment_distances_miles(coords: Sequence[Coordinate]) -> List[float]:
    return [
        distance_meters(coords[i], coords[i + 1]) / METERS_PER_MILE
        for i in range(len(coords) - 1)
    ]


def total_distance_miles(coords: Sequence[Coordinate]) -> float:
    """Sum of consecutive great circle distances, in miles. 0 for fewer than 2 points."""
    if len(coords) < 2:
        return 0.0
    total_m = 0.0
    for i in range(len(coords) - 1):
        total_m += distance_meters(coords[i], coords[i + 1])
    return total_m / METERS_PER_MILE
