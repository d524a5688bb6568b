"""Almacenamiento durable en JSON (cola offline y agenda local).

Por qué JSON:
- Legible y portable; la cola se puede inspeccionar/auditar a mano.
- La serialización la resuelve Pydantic (`model_dump(mode="json")`).

Escritura atómica: se escribe un archivo temporal y se reemplaza con
`os.replace`, así un corte a mitad de escritura no deja la cola corrupta.

Entre procesos: cada lectura-modificación-escritura toma un lock de archivo
(`<archivo>.lock`), así dos corridas de la CLI no pierden actualizaciones.
"""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from filelock import FileLock
from pydantic import TypeAdapter

from core.domain.models import CompletionAttempt, Prestacion
from core.interfaces.storage import PrestacionRepository, QueueStore

_ATTEMPTS = TypeAdapter(dict[str, CompletionAttempt])
_PRESTACIONES = TypeAdapter(dict[str, Prestacion])

# Solo cubre una lectura-escritura del archivo; si tarda más, algo quedó colgado.
_FILE_LOCK_TIMEOUT_SECONDS = 10.0


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    raw = path.read_text(encoding="utf-8")
    if not raw.strip():
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return data


def _write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        fh.write(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n")
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp, path)


class _JsonFile:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._io_lock = asyncio.Lock()
        self._file_lock = FileLock(f"{path}.lock", timeout=_FILE_LOCK_TIMEOUT_SECONDS)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._file_lock:
            yield


class JsonQueueStore(_JsonFile, QueueStore):
    """Mapa `prestacion_id -> CompletionAttempt` persistido en un archivo."""

    async def load_all(self) -> dict[str, CompletionAttempt]:
        async with self._io_lock:
            with self._exclusive():
                return _ATTEMPTS.validate_python(_read_json(self._path))

    async def put(self, attempt: CompletionAttempt) -> None:
        async with self._io_lock:
            with self._exclusive():
                data = _read_json(self._path)
                data[attempt.prestacion_id] = attempt.model_dump(mode="json")
                _write_json_atomic(self._path, data)

    async def delete(self, prestacion_id: str) -> None:
        async with self._io_lock:
            with self._exclusive():
                data = _read_json(self._path)
                if data.pop(prestacion_id, None) is not None:
                    _write_json_atomic(self._path, data)


class JsonPrestacionRepository(_JsonFile, PrestacionRepository):
    """Agenda local de prestaciones (cache de lo que asignó el backend)."""

    async def get(self, prestacion_id: str) -> Prestacion | None:
        async with self._io_lock:
            with self._exclusive():
                return _PRESTACIONES.validate_python(_read_json(self._path)).get(prestacion_id)

    async def save(self, prestacion: Prestacion) -> None:
        async with self._io_lock:
            with self._exclusive():
                data = _read_json(self._path)
                data[prestacion.prestacion_id] = prestacion.model_dump(mode="json")
                _write_json_atomic(self._path, data)

    async def list_all(self) -> list[Prestacion]:
        async with self._io_lock:
            with self._exclusive():
                items = _PRESTACIONES.validate_python(_read_json(self._path)).values()
        return sorted(items, key=lambda p: p.scheduled_at)
