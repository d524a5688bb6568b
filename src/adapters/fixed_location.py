"""Proveedor de ubicación con una posición fija.

Se usa desde la CLI (`--lat/--lng`) y en pruebas; en la app móvil el
proveedor real envuelve el GPS del dispositivo con el mismo contrato.
"""

from __future__ import annotations

from core.domain.errors import LocationPermissionDenied
from core.domain.models import Coordinate
from core.interfaces.location import LocationProvider


class FixedLocationProvider(LocationProvider):
    def __init__(self, coordinate: Coordinate | None) -> None:
        self._coordinate = coordinate

    async def get_current_position(self, timeout: float) -> Coordinate:
        if self._coordinate is None:
            raise LocationPermissionDenied("no location available")
        return self._coordinate
