"""Contratos de almacenamiento local.

- `PrestacionRepository`: agenda local de prestaciones (la crea el
  subsistema de turnos, acá solo se lee y se actualiza el estado).
- `QueueStore`: almacenamiento clave-valor durable para la cola offline;
  sobrevive reinicios y se lee al arrancar.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import CompletionAttempt, Prestacion


@runtime_checkable
class PrestacionRepository(Protocol):
    async def get(self, prestacion_id: str) -> Prestacion | None:
        ...

    async def save(self, prestacion: Prestacion) -> None:
        ...


@runtime_checkable
class QueueStore(Protocol):
    async def load_all(self) -> dict[str, CompletionAttempt]:
        ...

    async def put(self, attempt: CompletionAttempt) -> None:
        ...

    async def delete(self, prestacion_id: str) -> None:
        ...
