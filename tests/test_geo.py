from __future__ import annotations

import math

import pytest

from geopresence._constants import EARTH_RADIUS_METERS
from geopresence.geo import GeoPoint, classify, distance_between, haversine_meters, is_within
from geopresence.models.location import LocationFix

TARGET = GeoPoint(40.742352, -74.006210)


def _north_of(point: GeoPoint, meters: float) -> tuple[float, float]:
    return point.latitude + math.degrees(meters / EARTH_RADIUS_METERS), point.longitude


@pytest.mark.parametrize(
    ("lat", "lng"),
    [(0.0, 0.0), (40.742352, -74.006210), (-33.8688, 151.2093), (89.9, 179.9)],
)
def test_identical_points_are_zero_and_within(lat: float, lng: float) -> None:
    distance = haversine_meters(lat, lng, lat, lng)
    assert distance == 0.0
    assert is_within(distance, 0.0)
    assert is_within(distance, 100.0)


@pytest.mark.parametrize("radius", [0.0, 1.0, 100.0, 12345.6])
def test_boundary_distance_is_within(radius: float) -> None:
    assert is_within(radius, radius)
    assert not is_within(radius + 0.001, radius)


@pytest.mark.parametrize(
    ("a", "b"),
    [
        (GeoPoint(40.742352, -74.006210), GeoPoint(34.0522, -118.2437)),
        (GeoPoint(51.5074, -0.1278), GeoPoint(-33.8688, 151.2093)),
        (GeoPoint(0.0, 179.5), GeoPoint(0.0, -179.5)),
        (GeoPoint(-89.0, 10.0), GeoPoint(89.0, -170.0)),
    ],
)
def test_distance_is_symmetric(a: GeoPoint, b: GeoPoint) -> None:
    assert distance_between(a, b) == pytest.approx(distance_between(b, a), rel=1e-12)


def test_antipodal_points_are_half_circumference() -> None:
    assert haversine_meters(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_METERS, rel=1e-9)
    assert haversine_meters(90.0, 0.0, -90.0, 0.0) == pytest.approx(math.pi * EARTH_RADIUS_METERS, rel=1e-9)


def test_sample_200m_away_is_outside_100m_radius() -> None:
    lat, lng = _north_of(TARGET, 200.0)
    result = classify(LocationFix(latitude=lat, longitude=lng), TARGET, 100.0)

    assert result.distance_meters == pytest.approx(200.0, abs=0.01)
    assert result.rounded_distance == 200
    assert result.within is False


def test_sample_50m_away_is_within_100m_radius() -> None:
    lat, lng = _north_of(TARGET, 50.0)
    result = classify(LocationFix(latitude=lat, longitude=lng), TARGET, 100.0)

    assert result.rounded_distance == 50
    assert result.within is True


def test_one_degree_of_longitude_at_equator() -> None:
    expected = EARTH_RADIUS_METERS * math.radians(1.0)
    assert haversine_meters(0.0, 0.0, 0.0, 1.0) == pytest.approx(expected, rel=1e-9)
