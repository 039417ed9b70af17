"""Tests for distance calculation and geofence verification."""
import math

import pytest

from geocheckin.domain import Coordinate
from geocheckin.services.gps_service import GPSService
from geocheckin.utils.errors import InvalidCoordinate
from geocheckin.utils.helpers import format_distance

from conftest import CENTER, FAR, NEAR, OFFSET_400M, make_location


@pytest.mark.parametrize('a, b', [
    (CENTER, NEAR),
    (Coordinate(33.3152, 44.3661), Coordinate(-33.8688, 151.2093)),
    (Coordinate(0, 179.9), Coordinate(0, -179.9)),
    (Coordinate(89.9, 0), Coordinate(-89.9, 180)),
])
def test_distance_symmetry_and_identity(a, b):
    forward = GPSService.distance_between(a, b)
    backward = GPSService.distance_between(b, a)

    assert forward == pytest.approx(backward, rel=1e-4)
    assert GPSService.distance_between(a, a) == 0
    assert forward >= 0


def test_known_400m_fixture():
    north = Coordinate(CENTER.latitude + OFFSET_400M, CENTER.longitude)

    assert GPSService.distance_between(CENTER, north) == pytest.approx(400, rel=0.01)


def test_scenario_distances():
    assert GPSService.distance_between(CENTER, NEAR) == pytest.approx(111.19, abs=0.5)
    assert GPSService.distance_between(CENTER, FAR) == pytest.approx(555.97, abs=0.5)


def test_antipodal_points_do_not_fail():
    distance = GPSService.calculate_distance(0, 0, 0, 180)

    assert distance == pytest.approx(math.pi * GPSService.EARTH_RADIUS_METERS, rel=1e-6)


@pytest.mark.parametrize('lat1, lon1', [
    (90.0001, 0),
    (-91, 0),
    (0, 180.5),
    (0, -181),
    (float('nan'), 0),
    ('21.0', 105),
])
def test_invalid_coordinates_raise(lat1, lon1):
    with pytest.raises(InvalidCoordinate):
        GPSService.calculate_distance(lat1, lon1, 21.0, 105.0)


def test_coordinate_rejects_negative_accuracy():
    with pytest.raises(InvalidCoordinate):
        Coordinate(21.0, 105.0, accuracy=-1)


def test_verify_location_boundary_is_inclusive():
    location = make_location(radius=400)
    distance = GPSService.distance_between(NEAR, CENTER)

    on_edge = GPSService.verify_location(NEAR, location, radius_meters=distance)
    just_inside = GPSService.verify_location(NEAR, location, radius_meters=distance - 0.01)

    assert on_edge['is_inside'] is True
    assert just_inside['is_inside'] is False
    assert on_edge['center'] == {'latitude': 21.0, 'longitude': 105.0}


def test_verify_location_uses_location_radius_by_default():
    result = GPSService.verify_location(FAR, make_location(radius=400))

    assert result['is_inside'] is False
    assert result['radius'] == 400
    assert result['distance_display'] == '556 m'


@pytest.mark.parametrize('meters, expected', [
    (None, '-'),
    (0.4, '< 1 m'),
    (111.19, '111 m'),
    (999.4, '999 m'),
    (1234, '1.2 km'),
])
def test_format_distance(meters, expected):
    assert format_distance(meters) == expected
