"""Exclusión mutua por prestación.

El orquestador y el drenado de la cola offline comparten una instancia de
`KeyedLocks`: nunca actúan sobre la misma prestación a la vez, que es la
causa típica de cierres duplicados.

El lock es reentrante para la misma tarea asyncio, así el cierre puede
encolar (que también toma el lock de la clave) sin bloquearse a sí mismo.

Con `lock_dir`, además del lock en memoria se toma un lock de archivo por
clave (`filelock`): dos procesos (p.ej. `incluir sincronizar` y
`incluir reintentar` en paralelo) tampoco se pisan.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import quote

from filelock import FileLock, Timeout


class KeyedLocks:
    def __init__(self, lock_dir: Path | None = None, *, poll_interval: float = 0.05) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._owners: dict[str, asyncio.Task[object]] = {}
        self._lock_dir = lock_dir
        self._poll_interval = poll_interval

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if task is not None and self._owners.get(key) is task:
            yield
            return

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                if task is not None:
                    self._owners[key] = task
                try:
                    async with self._hold_file(key):
                        yield
                finally:
                    self._owners.pop(key, None)
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                # Nadie más espera esta clave: no acumular locks de prestaciones viejas.
                del self._users[key]
                self._locks.pop(key, None)

    @asynccontextmanager
    async def _hold_file(self, key: str) -> AsyncIterator[None]:
        if self._lock_dir is None:
            yield
            return

        self._lock_dir.mkdir(parents=True, exist_ok=True)
        # thread_local=False: se adquiere y libera siempre desde el event loop.
        file_lock = FileLock(str(self._lock_dir / f"{quote(key, safe='')}.lock"), thread_local=False)
        # Sin bloquear el event loop: se reintenta sin espera hasta obtenerlo.
        while True:
            try:
                file_lock.acquire(blocking=False)
                break
            except Timeout:
                await asyncio.sleep(self._poll_interval)
        try:
            yield
        finally:
            file_lock.release()
