"""Orquestador del cierre de prestaciones.

Flujo de `close(...)`:
1. Cargar la prestación (no existe -> NOT_FOUND, ya completada -> ALREADY_COMPLETED).
2. Ventana horaria (salvo override): cerrada -> TIME_WINDOW sin tocar el backend.
3. Geocerca (salvo override): fuera de radio -> LOCATION (falla blanda, queda pendiente).
4. Escritura remota con timeout.
5. Falla de conectividad -> se encola offline y se devuelve QUEUED_OFFLINE.
6. Rechazo de negocio -> REJECTED y el estado local se alinea con el backend.

Los pasos 2-3 son la función pura `evaluate_completion`; los efectos
secundarios viven solo en 4-6. Todo el cierre corre bajo el lock de la
prestación, compartido con la cola offline.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from core.domain.errors import (
    BackendRejected,
    ConnectivityError,
    LocationError,
    LocationPermissionDenied,
    LocationTimeout,
)
from core.domain.geo import ensure_valid
from core.domain.geofence import DEFAULT_RADIUS_METERS, validate_location
from core.domain.models import CompletionAttempt, Coordinate, Prestacion, PrestacionStatus
from core.domain.overrides import DevOverridePolicy
from core.domain.results import ValidationResult
from core.domain.time_window import is_within_window, minutes_remaining
from core.interfaces.backend import BackendWriter
from core.interfaces.location import LocationProvider
from core.interfaces.storage import PrestacionRepository
from core.logging_config import get_logger
from core.services.offline_sync import OfflineSyncQueue

LOGGER = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CompletionDecision:
    """Veredicto de las validaciones locales (sin I/O)."""

    failure: ValidationResult | None
    distance_meters: float | None

    @property
    def approved(self) -> bool:
        return self.failure is None


def evaluate_completion(
    prestacion: Prestacion,
    reported: Coordinate,
    now: datetime,
    policy: DevOverridePolicy,
    radius_meters: float = DEFAULT_RADIUS_METERS,
) -> CompletionDecision:
    """Aplica ventana horaria y geocerca, respetando los overrides."""

    if not policy.skip_time_validation and not is_within_window(prestacion.scheduled_at, now):
        return CompletionDecision(
            failure=ValidationResult.time_window_failure(
                prestacion.prestacion_id,
                minutes_remaining=minutes_remaining(prestacion.scheduled_at, now),
                estado=prestacion.estado,
            ),
            distance_meters=None,
        )

    # Con skip_location la distancia igual se mide y se reporta.
    check = validate_location(reported, prestacion.ubicacion_paciente, radius_meters)
    if not check.within_radius and not policy.skip_location_validation:
        return CompletionDecision(
            failure=ValidationResult.location_failure(
                prestacion.prestacion_id,
                distance_meters=check.distance_meters,
                estado=prestacion.estado,
            ),
            distance_meters=check.distance_meters,
        )
    return CompletionDecision(failure=None, distance_meters=check.distance_meters)


class PrestacionCloser:
    def __init__(
        self,
        repository: PrestacionRepository,
        writer: BackendWriter,
        queue: OfflineSyncQueue,
        *,
        clock: Clock | None = None,
        radius_meters: float = DEFAULT_RADIUS_METERS,
        write_timeout_seconds: float = 15.0,
        location_timeout_seconds: float = 10.0,
    ) -> None:
        self._repository = repository
        self._writer = writer
        self._queue = queue
        self._locks = queue.locks
        self._clock = clock or utc_now
        self._radius = radius_meters
        self._write_timeout = write_timeout_seconds
        self._location_timeout = location_timeout_seconds

    async def close(
        self,
        prestacion_id: str,
        reported: Coordinate,
        notas: str,
        policy: DevOverridePolicy,
    ) -> ValidationResult:
        ensure_valid(reported)
        policy.ensure_allowed()

        async with self._locks.hold(prestacion_id):
            prestacion = await self._repository.get(prestacion_id)
            if prestacion is None:
                return ValidationResult.not_found(prestacion_id)
            if prestacion.estado is PrestacionStatus.COMPLETED:
                return ValidationResult.already_completed(prestacion_id)

            now = self._clock()
            decision = evaluate_completion(prestacion, reported, now, policy, self._radius)
            if decision.failure is not None:
                LOGGER.info(
                    "prestacion_cierre_no_valido",
                    extra={
                        "prestacion_id": prestacion_id,
                        "kind": decision.failure.kind.value,
                        "distance_meters": decision.distance_meters,
                    },
                )
                return decision.failure

            if policy.any_enabled:
                LOGGER.warning(
                    "prestacion_cierre_con_overrides",
                    extra={"prestacion_id": prestacion_id, "distance_meters": decision.distance_meters},
                )
            return await self._commit(prestacion, reported, notas, now, decision.distance_meters)

    async def close_with_device_location(
        self,
        prestacion_id: str,
        provider: LocationProvider,
        notas: str,
        policy: DevOverridePolicy,
    ) -> ValidationResult:
        """Pide un fix de GPS (con timeout) y cierra con esa posición."""

        try:
            reported = await asyncio.wait_for(
                provider.get_current_position(self._location_timeout),
                timeout=self._location_timeout,
            )
        except LocationPermissionDenied:
            return ValidationResult.location_unavailable(prestacion_id, reason="permission_denied")
        except (LocationTimeout, asyncio.TimeoutError):
            return ValidationResult.location_unavailable(prestacion_id, reason="timeout")
        except LocationError as exc:
            return ValidationResult.location_unavailable(prestacion_id, reason=str(exc) or "location_error")
        return await self.close(prestacion_id, reported, notas, policy)

    async def _commit(
        self,
        prestacion: Prestacion,
        reported: Coordinate,
        notas: str,
        now: datetime,
        distance: float | None,
    ) -> ValidationResult:
        prestacion_id = prestacion.prestacion_id
        try:
            await asyncio.wait_for(
                self._writer.complete_prestacion(prestacion_id, reported, notas, now),
                timeout=self._write_timeout,
            )
        except (ConnectivityError, asyncio.TimeoutError) as exc:
            reason = str(exc) or type(exc).__name__
            # Primero la cola (durable), después el estado: si el proceso muere
            # entre ambos, el drenado igual completa la prestación.
            await self._queue.enqueue(
                CompletionAttempt(
                    prestacion_id=prestacion_id,
                    coordinate=reported,
                    notas=notas,
                    attempted_at=now,
                )
            )
            await self._repository.save(
                prestacion.model_copy(
                    update={
                        "estado": PrestacionStatus.QUEUED_OFFLINE,
                        "notas": notas,
                        "completada_en": now,
                        "ubicacion_cierre": reported,
                    }
                )
            )
            LOGGER.warning(
                "prestacion_cierre_encolado",
                extra={"prestacion_id": prestacion_id, "error": reason},
            )
            return ValidationResult.queued_offline(prestacion_id, distance_meters=distance, reason=reason)
        except BackendRejected as exc:
            estado = PrestacionStatus.from_backend(exc.backend_status, prestacion.estado)
            if estado is not prestacion.estado:
                await self._repository.save(prestacion.model_copy(update={"estado": estado}))
            if estado is PrestacionStatus.COMPLETED:
                await self._queue.supersede(prestacion_id)
            LOGGER.warning(
                "prestacion_cierre_rechazado",
                extra={"prestacion_id": prestacion_id, "reason": exc.reason},
            )
            return ValidationResult.rejected(
                prestacion_id, reason=exc.reason, estado=estado, distance_meters=distance
            )

        await self._repository.save(
            prestacion.model_copy(
                update={
                    "estado": PrestacionStatus.COMPLETED,
                    "notas": notas,
                    "completada_en": now,
                    "ubicacion_cierre": reported,
                }
            )
        )
        # Un intento viejo en cola ya no tiene sentido.
        await self._queue.supersede(prestacion_id)
        LOGGER.info(
            "prestacion_completada",
            extra={"prestacion_id": prestacion_id, "distance_meters": distance},
        )
        return ValidationResult.completed(prestacion_id, distance_meters=distance)
