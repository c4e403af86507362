from __future__ import annotations
from math import atan2, cos, radians, sin, sqrt
from typing import Iterable, Mapping

EARTH_RADIUS_M = 6371000


def distance_m(lat_a: float, lng_a: float, lat_b: float, lng_b: float) -> float:
    """Return great-circle distance in metres using the haversine formula."""
    d_lat = radians(lat_b - lat_a)
    d_lng = radians(lng_b - lng_a)
    lat1 = radians(lat_a)
    lat2 = radians(lat_b)
    a = sin(d_lat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(d_lng / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def point_in_polygon(lat: float, lng: float, polygon: Iterable[Mapping[str, float]]) -> bool:
    """
    Ray casting containment test over [{lat, lng}, ...] vertices.
    Polygons with fewer than 3 vertices contain nothing.
    """
    pts = [(float(p["lat"]), float(p["lng"])) for p in polygon]
    n = len(pts)
    if n < 3:
        return False
    inside = False
    j = n - 1
    for i in range(n):
        iy, ix = pts[i]
        jy, jx = pts[j]
        if (iy > lat) != (jy > lat) and lng < (jx - ix) * (lat - iy) / (jy - iy) + ix:
            inside = not inside
        j = i
    return inside

