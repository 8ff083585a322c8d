from __future__ import annotations
"""Coordinate normalization for location documents.

Location records arrive with coordinates in one of four shapes:

    {"latitude": 23.6, "longitude": 58.5}     LatitudeLongitude
    {"lat": 23.6, "lng": 58.5}                LatLng
    {"_lat": 23.6, "_long": 58.5}             GeoPoint (serialized geopoint)
    [23.6, 58.5]                              Pair

`classify` maps a raw value onto exactly one of those (or `Unrecognized`);
`normalize` turns any raw value into a `Coordinates` pair or None. It never
raises and never returns a half-filled result, and feeding its own output
back in yields the same value.
"""
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

LAT_RANGE = (-90.0, 90.0)
LNG_RANGE = (-180.0, 180.0)


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def as_dict(self):
        return {'lat': self.lat, 'lng': self.lng}


@dataclass(frozen=True)
class LatitudeLongitude:
    latitude: Any
    longitude: Any


@dataclass(frozen=True)
class LatLng:
    lat: Any
    lng: Any


@dataclass(frozen=True)
class GeoPoint:
    lat: Any
    long: Any


@dataclass(frozen=True)
class Pair:
    first: Any
    second: Any


@dataclass(frozen=True)
class Unrecognized:
    raw: Any


CoordinateShape = Union[LatitudeLongitude, LatLng, GeoPoint, Pair, Unrecognized]


def classify(raw: Any) -> CoordinateShape:
    if isinstance(raw, Coordinates):
        return LatLng(raw.lat, raw.lng)
    if isinstance(raw, Mapping):
        if 'latitude' in raw and 'longitude' in raw:
            return LatitudeLongitude(raw['latitude'], raw['longitude'])
        if 'lat' in raw and 'lng' in raw:
            return LatLng(raw['lat'], raw['lng'])
        if '_lat' in raw and '_long' in raw:
            return GeoPoint(raw['_lat'], raw['_long'])
        return Unrecognized(raw)
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return Pair(raw[0], raw[1])
    return Unrecognized(raw)


def _as_number(value: Any) -> Optional[float]:
    # bool is an int subclass; a flag is never a coordinate
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _components(shape: CoordinateShape):
    if isinstance(shape, LatitudeLongitude):
        return shape.latitude, shape.longitude
    if isinstance(shape, LatLng):
        return shape.lat, shape.lng
    if isinstance(shape, GeoPoint):
        return shape.lat, shape.long
    if isinstance(shape, Pair):
        return shape.first, shape.second
    return None


def normalize(raw: Any) -> Optional[Coordinates]:
    """Return a range-checked Coordinates pair, or None when raw is unusable."""
    parts = _components(classify(raw))
    if parts is None:
        return None
    lat, lng = _as_number(parts[0]), _as_number(parts[1])
    if lat is None or lng is None:
        return None
    if not (LAT_RANGE[0] <= lat <= LAT_RANGE[1]) or not (LNG_RANGE[0] <= lng <= LNG_RANGE[1]):
        return None
    return Coordinates(lat, lng)


# Fields probed on a location document, in priority order
_NESTED_FIELDS = ('coords', 'coordinates', 'location')


def extract_location_coordinates(doc: Mapping[str, Any]) -> Optional[Coordinates]:
    """Find and normalize the coordinates carried by a location document.

    Nested fields win over top-level latitude/longitude or lat/lng keys.
    """
    for field in _NESTED_FIELDS:
        if doc.get(field) is not None:
            found = normalize(doc[field])
            if found is not None:
                return found
    if 'latitude' in doc and 'longitude' in doc:
        return normalize({'latitude': doc['latitude'], 'longitude': doc['longitude']})
    if 'lat' in doc and 'lng' in doc:
        return normalize({'lat': doc['lat'], 'lng': doc['lng']})
    return None

__all__ = [
    'Coordinates', 'LatitudeLongitude', 'LatLng', 'GeoPoint', 'Pair', 'Unrecognized',
    'classify', 'normalize', 'extract_location_coordinates',
]
