"""Great-circle geometry between coordinates."""

import math

from carewatch.domain.errors import InvalidCoordinate
from carewatch.domain.models import Coordinate

EARTH_RADIUS_METERS = 6_371_000.0


def validate_coordinate(coordinate: Coordinate) -> None:
    """Raise InvalidCoordinate for NaN/infinite or out-of-range values."""
    lat, lon = coordinate.latitude, coordinate.longitude
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinate(f"Non-finite coordinate: {lat}, {lon}")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"Latitude out of range: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(f"Longitude out of range: {lon}")


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters."""
    validate_coordinate(a)
    validate_coordinate(b)

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c


def bearing_degrees(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from a to b, clockwise from north in [0, 360)."""
    validate_coordinate(a)
    validate_coordinate(b)

    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    y = math.sin(dlon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360
