"""Contrato del proveedor de ubicación del dispositivo."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import Coordinate


@runtime_checkable
class LocationProvider(Protocol):
    """Obtiene un único fix de GPS.

    Puede levantar `LocationPermissionDenied` o `LocationTimeout`. El timeout
    se aplica además desde afuera (`asyncio.wait_for`), así que una
    implementación que cuelga igual resuelve en un fallo tipado.
    """

    async def get_current_position(self, timeout: float) -> Coordinate:
        ...
