"""Cola offline de cierres pendientes de sincronizar.

Responsabilidad:
- Guardar (de forma durable) los intentos de cierre que no llegaron al
  backend por falta de conectividad.
- Reintentarlos cuando vuelve la red (`drain`), con un máximo de reintentos.
- Nunca descartar en silencio: lo que agota reintentos queda como
  *abandonado* y visible hasta que el usuario lo reencole o lo descarte.

Invariantes:
- Como máximo un intento por prestación; uno nuevo reemplaza al anterior.
- Toda mutación pasa por esta clase y toma el lock de la prestación
  (compartido con `PrestacionCloser`).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from core.domain.errors import BackendRejected, ConnectivityError
from core.domain.models import CompletionAttempt, PrestacionStatus
from core.interfaces.backend import BackendWriter
from core.interfaces.storage import PrestacionRepository, QueueStore
from core.logging_config import get_logger
from core.services.locks import KeyedLocks

LOGGER = get_logger(__name__)

DEFAULT_MAX_RETRIES = 5


class ReplayOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    STILL_QUEUED = "still_queued"
    ABANDONED = "abandoned"
    REJECTED = "rejected"


@dataclass
class RejectedReplay:
    prestacion_id: str
    reason: str


@dataclass
class DrainReport:
    """Resultado de un drenado. Las listas son disjuntas."""

    succeeded: list[str] = field(default_factory=list)
    still_queued: list[str] = field(default_factory=list)
    abandoned: list[str] = field(default_factory=list)
    rejected: list[RejectedReplay] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.still_queued) + len(self.abandoned) + len(self.rejected)

    def record(self, prestacion_id: str, outcome: ReplayOutcome, reason: str | None = None) -> None:
        if outcome is ReplayOutcome.SUCCEEDED:
            self.succeeded.append(prestacion_id)
        elif outcome is ReplayOutcome.STILL_QUEUED:
            self.still_queued.append(prestacion_id)
        elif outcome is ReplayOutcome.ABANDONED:
            self.abandoned.append(prestacion_id)
        elif outcome is ReplayOutcome.REJECTED:
            self.rejected.append(RejectedReplay(prestacion_id=prestacion_id, reason=reason or ""))


class OfflineSyncQueue:
    def __init__(
        self,
        store: QueueStore,
        repository: PrestacionRepository,
        *,
        locks: KeyedLocks | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        write_timeout_seconds: float = 15.0,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._store = store
        self._repository = repository
        self.locks = locks or KeyedLocks()
        self._max_retries = max_retries
        self._write_timeout = write_timeout_seconds
        self._entries: dict[str, CompletionAttempt] = {}
        self._restored = False
        self._restore_lock = asyncio.Lock()

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def restore(self) -> list[CompletionAttempt]:
        """Carga el store durable (al arrancar). Idempotente."""

        async with self._restore_lock:
            if not self._restored:
                loaded = await self._store.load_all()
                # Lo encolado en esta sesión antes de restaurar es más nuevo.
                self._entries = {**loaded, **self._entries}
                self._restored = True
                LOGGER.info("cola_offline_restaurada", extra={"count": len(self._entries)})
        return list(self._entries.values())

    async def enqueue(self, attempt: CompletionAttempt) -> None:
        await self.restore()
        async with self.locks.hold(attempt.prestacion_id):
            previous = self._entries.get(attempt.prestacion_id)
            await self._store.put(attempt)
            self._entries[attempt.prestacion_id] = attempt
        LOGGER.info(
            "cola_offline_encolado",
            extra={"prestacion_id": attempt.prestacion_id, "reason": "replaced" if previous else "new"},
        )

    def get(self, prestacion_id: str) -> CompletionAttempt | None:
        return self._entries.get(prestacion_id)

    def pending(self) -> list[CompletionAttempt]:
        return sorted(
            (a for a in self._entries.values() if not a.abandoned),
            key=lambda a: a.attempted_at,
        )

    def abandoned(self) -> list[CompletionAttempt]:
        return sorted(
            (a for a in self._entries.values() if a.abandoned),
            key=lambda a: a.attempted_at,
        )

    async def drain(self, writer: BackendWriter) -> DrainReport:
        """Reintenta cada intento encolado (no abandonado) contra el backend."""

        await self.restore()
        report = DrainReport()
        for attempt in self.pending():
            async with self.locks.hold(attempt.prestacion_id):
                current = await self._refresh(attempt.prestacion_id)
                # Pudo resolverse (reintento manual, otro proceso) o reemplazarse mientras esperábamos el lock.
                if current is None or current.abandoned:
                    continue
                outcome, reason = await self._replay(current, writer)
            report.record(current.prestacion_id, outcome, reason)

        LOGGER.info(
            "cola_offline_drenada",
            extra={
                "summary": (
                    f"ok={len(report.succeeded)} pending={len(report.still_queued)} "
                    f"abandoned={len(report.abandoned)} rejected={len(report.rejected)}"
                )
            },
        )
        return report

    async def retry(self, prestacion_id: str, writer: BackendWriter) -> DrainReport:
        """Reintento manual desde la UI de una sola prestación (incluso si está abandonada)."""

        await self.restore()
        report = DrainReport()
        async with self.locks.hold(prestacion_id):
            current = await self._refresh(prestacion_id)
            if current is None:
                return report
            outcome, reason = await self._replay(current, writer)
        report.record(prestacion_id, outcome, reason)
        return report

    async def requeue(self, prestacion_id: str) -> bool:
        """Devuelve un intento abandonado a la cola con el contador en cero."""

        await self.restore()
        async with self.locks.hold(prestacion_id):
            current = await self._refresh(prestacion_id)
            if current is None or not current.abandoned:
                return False
            revived = current.model_copy(update={"abandoned": False, "retry_count": 0})
            await self._store.put(revived)
            self._entries[prestacion_id] = revived
        return True

    async def supersede(self, prestacion_id: str) -> bool:
        """Quita el intento encolado porque el backend ya confirmó el cierre por otra vía."""

        await self.restore()
        async with self.locks.hold(prestacion_id):
            if await self._refresh(prestacion_id) is None:
                return False
            await self._forget(prestacion_id)
        LOGGER.info("cola_offline_reemplazado", extra={"prestacion_id": prestacion_id})
        return True

    async def discard(self, prestacion_id: str) -> bool:
        """Descarta un intento (decisión explícita del usuario) y vuelve la prestación a pendiente."""

        await self.restore()
        async with self.locks.hold(prestacion_id):
            if await self._refresh(prestacion_id) is None:
                return False
            await self._forget(prestacion_id)
            prestacion = await self._repository.get(prestacion_id)
            if prestacion is not None and prestacion.estado is PrestacionStatus.QUEUED_OFFLINE:
                await self._repository.save(prestacion.model_copy(update={"estado": PrestacionStatus.PENDING}))
        LOGGER.warning("cola_offline_descartado", extra={"prestacion_id": prestacion_id})
        return True

    async def _refresh(self, prestacion_id: str) -> CompletionAttempt | None:
        # El store manda: otro proceso con el mismo archivo pudo resolver o actualizar el intento.
        current = (await self._store.load_all()).get(prestacion_id)
        if current is None:
            self._entries.pop(prestacion_id, None)
        else:
            self._entries[prestacion_id] = current
        return current

    async def _replay(
        self, attempt: CompletionAttempt, writer: BackendWriter
    ) -> tuple[ReplayOutcome, str | None]:
        try:
            await asyncio.wait_for(
                writer.complete_prestacion(
                    attempt.prestacion_id,
                    attempt.coordinate,
                    attempt.notas,
                    attempt.attempted_at,
                ),
                timeout=self._write_timeout,
            )
        except (ConnectivityError, asyncio.TimeoutError) as exc:
            return await self._register_failure(attempt, str(exc) or type(exc).__name__)
        except BackendRejected as exc:
            await self._forget(attempt.prestacion_id)
            await self._reconcile(attempt, exc.backend_status)
            LOGGER.warning(
                "cola_offline_rechazado",
                extra={"prestacion_id": attempt.prestacion_id, "reason": exc.reason},
            )
            return ReplayOutcome.REJECTED, exc.reason

        await self._forget(attempt.prestacion_id)
        await self._mark_completed(attempt)
        LOGGER.info("cola_offline_sincronizado", extra={"prestacion_id": attempt.prestacion_id})
        return ReplayOutcome.SUCCEEDED, None

    async def _register_failure(
        self, attempt: CompletionAttempt, error: str
    ) -> tuple[ReplayOutcome, str | None]:
        retry_count = attempt.retry_count + 1
        abandoned = attempt.abandoned or retry_count >= self._max_retries
        failed = attempt.model_copy(
            update={"retry_count": retry_count, "last_error": error, "abandoned": abandoned}
        )
        await self._store.put(failed)
        self._entries[attempt.prestacion_id] = failed
        if abandoned:
            LOGGER.warning(
                "cola_offline_abandonada",
                extra={"prestacion_id": attempt.prestacion_id, "retry_count": retry_count, "error": error},
            )
            return ReplayOutcome.ABANDONED, error
        LOGGER.info(
            "cola_offline_reintento_fallido",
            extra={"prestacion_id": attempt.prestacion_id, "retry_count": retry_count, "error": error},
        )
        return ReplayOutcome.STILL_QUEUED, error

    async def _forget(self, prestacion_id: str) -> None:
        await self._store.delete(prestacion_id)
        self._entries.pop(prestacion_id, None)

    async def _mark_completed(self, attempt: CompletionAttempt) -> None:
        prestacion = await self._repository.get(attempt.prestacion_id)
        if prestacion is None:
            return
        await self._repository.save(
            prestacion.model_copy(
                update={
                    "estado": PrestacionStatus.COMPLETED,
                    "notas": attempt.notas,
                    "completada_en": attempt.attempted_at,
                    "ubicacion_cierre": attempt.coordinate,
                }
            )
        )

    async def _reconcile(self, attempt: CompletionAttempt, backend_status: str | None) -> None:
        prestacion = await self._repository.get(attempt.prestacion_id)
        if prestacion is None:
            return
        estado = PrestacionStatus.from_backend(backend_status, PrestacionStatus.PENDING)
        await self._repository.save(prestacion.model_copy(update={"estado": estado}))
