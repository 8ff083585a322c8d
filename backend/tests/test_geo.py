import math
import pytest
from queue_manager.utils.geo import (
    Coordinates, GeoPoint, LatLng, LatitudeLongitude, Pair, Unrecognized,
    classify, extract_location_coordinates, normalize,
)


@pytest.mark.parametrize('raw, shape', [
    ({'latitude': 23.6, 'longitude': 58.5}, LatitudeLongitude),
    ({'lat': 23.6, 'lng': 58.5}, LatLng),
    ({'_lat': 23.6, '_long': 58.5}, GeoPoint),
    ([23.6, 58.5], Pair),
    ((23.6, 58.5), Pair),
    ({'x': 1, 'y': 2}, Unrecognized),
    ([1, 2, 3], Unrecognized),
    ('23.6,58.5', Unrecognized),
    (None, Unrecognized),
])
def test_classify_shapes(raw, shape):
    assert isinstance(classify(raw), shape)


def test_all_four_shapes_normalize_to_same_pair():
    expected = Coordinates(23.6, 58.5)
    for raw in ({'latitude': 23.6, 'longitude': 58.5}, {'lat': 23.6, 'lng': 58.5},
                {'_lat': 23.6, '_long': 58.5}, [23.6, 58.5]):
        assert normalize(raw) == expected


@pytest.mark.parametrize('raw', [
    {'lat': 91, 'lng': 0},
    {'lat': 0, 'lng': -180.5},
    {'lat': 'abc', 'lng': 10},
    {'lat': None, 'lng': 10},
    {'lat': True, 'lng': 10},
    {'lat': float('nan'), 'lng': 10},
    {'lat': math.inf, 'lng': 10},
    {'latitude': 10},
    [10],
    [],
    {},
    42,
])
def test_malformed_input_is_rejected_whole(raw):
    assert normalize(raw) is None


def test_numeric_strings_and_bounds_are_accepted():
    assert normalize({'lat': ' 45.5 ', 'lng': '-120'}) == Coordinates(45.5, -120.0)
    assert normalize([-90, 180]) == Coordinates(-90.0, 180.0)


def test_normalize_is_idempotent():
    once = normalize({'_lat': '12.5', '_long': 77})
    assert normalize(once) == once
    assert normalize(once.as_dict()) == once


def test_extract_prefers_nested_fields_then_top_level():
    doc = {'coords': {'lat': 1, 'lng': 2}, 'latitude': 5, 'longitude': 6}
    assert extract_location_coordinates(doc) == Coordinates(1.0, 2.0)
    assert extract_location_coordinates({'location': [3, 4]}) == Coordinates(3.0, 4.0)
    assert extract_location_coordinates({'coords': {'bad': 1}, 'latitude': 5, 'longitude': 6}) == Coordinates(5.0, 6.0)
    assert extract_location_coordinates({'lat': 7, 'lng': 8}) == Coordinates(7.0, 8.0)
    assert extract_location_coordinates({'name': 'no coords'}) is None
