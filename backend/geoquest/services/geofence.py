from __future__ import annotations
from dataclasses import dataclass
from geoquest.config import settings
from geoquest.services.geo import distance_m, point_in_polygon


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy_m: float | None = None


@dataclass(frozen=True)
class RangeCheck:
    within: bool
    distance_m: float
    radius_m: float
    accuracy_ok: bool = True


def accuracy_ok(accuracy_m: float | None, ceiling_m: float | None = None) -> bool:
    """A fix without reported accuracy is trusted; otherwise it must be within the ceiling."""
    if accuracy_m is None:
        return True
    ceiling = settings.gps_max_accuracy_m if ceiling_m is None else ceiling_m
    return accuracy_m <= ceiling


def check_range(pos: Position, center_lat: float, center_lng: float, radius_m: float,
                ceiling_m: float | None = None) -> RangeCheck:
    """
    Inclusive radius test: a team exactly on the boundary is in range.
    Low-quality fixes are never in range, whatever their distance.
    """
    d = distance_m(pos.latitude, pos.longitude, center_lat, center_lng)
    ok = accuracy_ok(pos.accuracy_m, ceiling_m)
    return RangeCheck(within=ok and d <= radius_m, distance_m=d, radius_m=radius_m, accuracy_ok=ok)


def is_within_range(pos: Position, center_lat: float, center_lng: float, radius_m: float) -> bool:
    return check_range(pos, center_lat, center_lng, radius_m).within


def outside_polygon(pos: Position, polygon: list | None) -> bool:
    """True only when a usable polygon exists and the position lies outside it."""
    if not polygon or len(polygon) < 3:
        return False
    return not point_in_polygon(pos.latitude, pos.longitude, polygon)
