"""Great-circle distance and presence classification."""

from __future__ import annotations

import math
from dataclasses import dataclass

from geopresence._constants import EARTH_RADIUS_METERS
from geopresence.models.location import LocationFix


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Classification:
    """Outcome of comparing one sample against the reference point."""

    distance_meters: float
    within: bool

    @property
    def rounded_distance(self) -> int:
        return int(round(self.distance_meters))


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push a slightly above 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_meters(a.latitude, a.longitude, b.latitude, b.longitude)


def is_within(distance_meters: float, radius_meters: float) -> bool:
    """Inclusive radius check: a sample exactly on the boundary is within."""
    return distance_meters <= radius_meters


def classify(fix: LocationFix, target: GeoPoint, radius_meters: float) -> Classification:
    distance = haversine_meters(fix.latitude, fix.longitude, target.latitude, target.longitude)
    return Classification(distance_meters=distance, within=is_within(distance, radius_meters))
