from __future__ import annotations

import pytest

from conftest import north_of
from core.domain.geofence import DEFAULT_RADIUS_METERS, validate_location
from core.domain.models import Coordinate

ORIGIN = Coordinate(latitude=0, longitude=0)


def test_radio_por_defecto_es_50_metros() -> None:
    assert DEFAULT_RADIUS_METERS == 50.0


def test_borde_inclusivo_a_50_metros() -> None:
    check = validate_location(north_of(ORIGIN, 50), ORIGIN)
    assert check.within_radius is True
    assert check.distance_meters == pytest.approx(50)


def test_fuera_a_51_metros() -> None:
    check = validate_location(north_of(ORIGIN, 51), ORIGIN)
    assert check.within_radius is False
    assert check.distance_meters == pytest.approx(51)


def test_radio_configurable_por_llamada() -> None:
    reported = north_of(ORIGIN, 80)
    assert validate_location(reported, ORIGIN, radius_meters=100).within_radius is True
    assert validate_location(reported, ORIGIN, radius_meters=79).within_radius is False


def test_radio_no_positivo_es_error() -> None:
    with pytest.raises(ValueError):
        validate_location(ORIGIN, ORIGIN, radius_meters=0)
