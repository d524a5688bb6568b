"""Distancias sobre la esfera terrestre (haversine)."""

from __future__ import annotations

import math

from core.domain.errors import InvalidCoordinate
from core.domain.models import Coordinate

EARTH_RADIUS_METERS = 6_371_000.0


def ensure_valid(coordinate: Coordinate) -> Coordinate:
    """Levanta `InvalidCoordinate` si la coordenada está fuera de rango o no es finita."""

    lat = coordinate.latitude
    lng = coordinate.longitude
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinate(lat, lng)
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
        raise InvalidCoordinate(lat, lng)
    return coordinate


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Distancia de gran círculo entre `a` y `b`, en metros (siempre >= 0)."""

    ensure_valid(a)
    ensure_valid(b)

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Redondeo numérico puede dejar h apenas fuera de [0, 1].
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(h), math.sqrt(1 - h))
