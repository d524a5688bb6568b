from __future__ import annotations

import asyncio
import math
from collections import deque
from datetime import datetime, timezone

import pytest

from core.domain.geo import EARTH_RADIUS_METERS
from core.domain.models import CompletionAttempt, Coordinate, Prestacion, PrestacionStatus
from core.interfaces.backend import BackendAck
from core.services.offline_sync import OfflineSyncQueue
from core.services.prestacion_closer import PrestacionCloser

PATIENT_HOME = Coordinate(latitude=-34.6037, longitude=-58.3816)
SCHEDULED = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def north_of(base: Coordinate, meters: float) -> Coordinate:
    """Coordenada `meters` metros al norte de `base` sobre el mismo meridiano."""

    return Coordinate(
        latitude=base.latitude + math.degrees(meters / EARTH_RADIUS_METERS),
        longitude=base.longitude,
    )


def make_prestacion(
    prestacion_id: str = "p-1",
    *,
    scheduled_at: datetime = SCHEDULED,
    estado: PrestacionStatus = PrestacionStatus.PENDING,
    home: Coordinate = PATIENT_HOME,
) -> Prestacion:
    return Prestacion(
        prestacion_id=prestacion_id,
        scheduled_at=scheduled_at,
        paciente_id="pac-9",
        estado=estado,
        ubicacion_paciente=home,
        paciente_nombre="Ana Uno",
        paciente_telefono="+5491100000000",
    )


def make_attempt(prestacion_id: str = "p-1", *, notas: str = "", retry_count: int = 0) -> CompletionAttempt:
    return CompletionAttempt(
        prestacion_id=prestacion_id,
        coordinate=PATIENT_HOME,
        notas=notas,
        attempted_at=SCHEDULED,
        retry_count=retry_count,
    )


class InMemoryPrestacionRepository:
    def __init__(self, *prestaciones: Prestacion) -> None:
        self.items = {p.prestacion_id: p for p in prestaciones}

    async def get(self, prestacion_id: str) -> Prestacion | None:
        await asyncio.sleep(0)
        return self.items.get(prestacion_id)

    async def save(self, prestacion: Prestacion) -> None:
        await asyncio.sleep(0)
        self.items[prestacion.prestacion_id] = prestacion


class InMemoryQueueStore:
    def __init__(self, *attempts: CompletionAttempt) -> None:
        self.data = {a.prestacion_id: a for a in attempts}

    async def load_all(self) -> dict[str, CompletionAttempt]:
        return dict(self.data)

    async def put(self, attempt: CompletionAttempt) -> None:
        self.data[attempt.prestacion_id] = attempt

    async def delete(self, prestacion_id: str) -> None:
        self.data.pop(prestacion_id, None)


class ScriptedBackendWriter:
    """Backend falso: por prestación, una secuencia de excepciones a levantar (None = ack)."""

    def __init__(self, **scripts: list[BaseException | None]) -> None:
        self._scripts = {key: deque(value) for key, value in scripts.items()}
        self.calls: list[tuple[str, Coordinate, str, datetime]] = []

    async def complete_prestacion(
        self, prestacion_id: str, coordinate: Coordinate, notas: str, timestamp: datetime
    ) -> BackendAck:
        self.calls.append((prestacion_id, coordinate, notas, timestamp))
        await asyncio.sleep(0)
        script = self._scripts.get(prestacion_id)
        outcome = script.popleft() if script else None
        if outcome is not None:
            raise outcome
        return BackendAck(prestacion_id=prestacion_id)


class BlockingBackendWriter:
    """Backend que no responde hasta que se libera `release`."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def complete_prestacion(
        self, prestacion_id: str, coordinate: Coordinate, notas: str, timestamp: datetime
    ) -> BackendAck:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return BackendAck(prestacion_id=prestacion_id)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def build_closer(
    repository: InMemoryPrestacionRepository,
    writer: object,
    *,
    now: datetime,
    store: InMemoryQueueStore | None = None,
    max_retries: int = 5,
    write_timeout_seconds: float = 5.0,
) -> tuple[PrestacionCloser, OfflineSyncQueue]:
    queue = OfflineSyncQueue(
        store or InMemoryQueueStore(),
        repository,
        max_retries=max_retries,
        write_timeout_seconds=write_timeout_seconds,
    )
    closer = PrestacionCloser(
        repository,
        writer,  # type: ignore[arg-type]
        queue,
        clock=FakeClock(now),
        write_timeout_seconds=write_timeout_seconds,
        location_timeout_seconds=0.05,
    )
    return closer, queue


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("INCLUIR_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("INCLUIR_ENVIRONMENT", "production")
    return tmp_path / "data"
