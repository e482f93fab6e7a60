"""
Geo-math helpers for the discovery grid.

Degree conversions use the flat 111 km/degree approximation; that is
plenty for sizing search tiles of a few km. Distances that feed external
search radii use the haversine great-circle formula.
"""

from __future__ import annotations

import math

KM_PER_DEGREE = 111.0
EARTH_RADIUS_KM = 6371.0
KEY_PRECISION = 6


def km_to_lat_degrees(km: float) -> float:
    return km / KM_PER_DEGREE


def km_to_lng_degrees(km: float, mid_lat: float) -> float:
    # meridians converge toward the poles, so a degree of longitude shrinks with cos(lat)
    return km / (KM_PER_DEGREE * math.cos(math.radians(mid_lat)))


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km between two lat/lng points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def tile_index(value: float, step: float) -> int:
    """Index of the tile containing `value` on a grid anchored at 0."""
    return math.floor(value / step)


def quantize(value: float, step: float) -> float:
    """Snap `value` down to the nearest multiple of `step`."""
    return tile_index(value, step) * step


def cell_key(lat: float, lng: float) -> str:
    """Fixed-precision key for a tile's south-west corner."""
    return f"{lat:.{KEY_PRECISION}f}_{lng:.{KEY_PRECISION}f}"


def tile_key(lat: float, lng: float, lat_step: float, lng_step: float) -> str:
    """Key of the tile containing (lat, lng); identical for every viewport that reaches it."""
    return cell_key(quantize(lat, lat_step), quantize(lng, lng_step))
