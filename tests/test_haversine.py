import math

import pytest

from algorithms.exceptions import ValidationError
from algorithms.haversine import (
    bounding_box,
    distances_from,
    estimate_travel_time,
    format_distance,
    haversine_distance,
    is_valid_coordinates,
    validate_coordinates,
)


def test_zero_distance():
    assert haversine_distance(27.7, 85.3, 27.7, 85.3) == 0


def test_one_degree_of_latitude():
    assert haversine_distance(0, 0, 1, 0) == pytest.approx(111.195, abs=0.01)


def test_distance_is_symmetric():
    d1 = haversine_distance(27.7172, 85.3240, 28.2096, 83.9856)
    d2 = haversine_distance(28.2096, 83.9856, 27.7172, 85.3240)
    assert d1 == pytest.approx(d2)
    # Kathmandu to Pokhara
    assert 130 < d1 < 160


def test_antipodal_points_do_not_blow_up():
    assert haversine_distance(0, 0, 0, 180) == pytest.approx(math.pi * 6371)


def test_vectorised_distances_match_scalar():
    points = [(27.7, 85.3), (28.2, 83.98), (26.45, 87.27)]
    distances = distances_from(27.7172, 85.3240, points)
    for (lat, lng), km in zip(points, distances):
        assert km == pytest.approx(haversine_distance(27.7172, 85.3240, lat, lng))


def test_vectorised_distances_empty():
    assert len(distances_from(0, 0, [])) == 0


def test_bounding_box_contains_radius():
    box = bounding_box(27.7, 85.3, 10)
    assert box['min_lat'] < 27.7 < box['max_lat']
    assert box['max_lat'] - 27.7 == pytest.approx(10 / 111.195, rel=1e-3)
    # Longitude degrees are shorter away from the equator
    assert box['max_lng'] - 85.3 > box['max_lat'] - 27.7


def test_bounding_box_at_pole():
    box = bounding_box(90, 0, 10)
    assert box['min_lng'] == -180 and box['max_lng'] == 180
    assert not box['wraps']


@pytest.mark.parametrize('lon, other', [(179.99, -179.99), (-179.99, 179.99)])
def test_bounding_box_wraps_at_antimeridian(lon, other):
    box = bounding_box(0, lon, 50)

    assert box['wraps']
    assert box['min_lng'] > box['max_lng']
    assert -180 <= box['max_lng'] < box['min_lng'] <= 180
    # A point 2 km away on the other side of the line is inside
    assert other >= box['min_lng'] or other <= box['max_lng']
    assert haversine_distance(0, lon, 0, other) < 3


@pytest.mark.parametrize('km, minutes, formatted', [
    (10, 20, '20 min'),
    (35, 70, '1h 10m'),
    (0, 0, '0 min'),
])
def test_travel_time(km, minutes, formatted):
    assert estimate_travel_time(km) == {'minutes': minutes, 'formatted': formatted}


def test_travel_time_walking():
    assert estimate_travel_time(5, mode='walking')['minutes'] == 60


@pytest.mark.parametrize('km, text', [
    (0.25, '250m'),
    (2.345, '2.3km'),
    (5.0, '5km'),
    (12.6, '13km'),
])
def test_format_distance(km, text):
    assert format_distance(km) == text


@pytest.mark.parametrize('lat, lng, valid', [
    (27.7, 85.3, True),
    (-90, 180, True),
    (91, 0, False),
    (0, -181, False),
    (float('nan'), 0, False),
    (True, 0, False),
    ('27.7', 85.3, False),
    (None, None, False),
])
def test_coordinate_validation(lat, lng, valid):
    assert is_valid_coordinates(lat, lng) is valid


def test_validate_coordinates_raises():
    with pytest.raises(ValidationError):
        validate_coordinates(100, 0)
    assert validate_coordinates(1, 2) == (1.0, 2.0)
