"""Contrato del backend que confirma cierres.

Reglas de diseño:
- `complete_prestacion` es asíncrono porque hace I/O de red.
- Éxito: devuelve `BackendAck`.
- Falla de transporte: levanta `ConnectivityError` (el núcleo encola).
- Rechazo de negocio: levanta `BackendRejected` (el núcleo lo muestra).
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from core.domain.models import Coordinate


class BackendAck(BaseModel):
    prestacion_id: str
    confirmed_at: datetime | None = Field(
        default=None,
        description="Timestamp de confirmación informado por el backend, si lo envía.",
    )


@runtime_checkable
class BackendWriter(Protocol):
    async def complete_prestacion(
        self,
        prestacion_id: str,
        coordinate: Coordinate,
        notas: str,
        timestamp: datetime,
    ) -> BackendAck:
        ...
