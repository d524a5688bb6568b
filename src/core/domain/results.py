"""Resultado de un intento de cierre.

Por qué un único modelo con `kind`:
- La capa de presentación hace un mapeo exhaustivo `kind -> acción`
  (ver `core.services.recovery`) sin depender de jerarquías de excepciones.
- Es inmutable y se construye una sola vez por intento; nunca se persiste.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.domain.models import PrestacionStatus


class ResultKind(str, Enum):
    COMPLETED = "completed"
    QUEUED_OFFLINE = "queued_offline"
    TIME_WINDOW = "time_window"
    LOCATION = "location"
    LOCATION_UNAVAILABLE = "location_unavailable"
    NOT_FOUND = "not_found"
    ALREADY_COMPLETED = "already_completed"
    REJECTED = "rejected"


_SUCCESS_KINDS = frozenset({ResultKind.COMPLETED, ResultKind.QUEUED_OFFLINE})


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ResultKind
    prestacion_id: str
    minutes_remaining: int | None = Field(
        default=None,
        description="Solo para TIME_WINDOW: minutos hasta que abra la ventana.",
    )
    distance_meters: float | None = Field(
        default=None,
        ge=0,
        description="Distancia medida al domicilio, presente siempre que se evaluó la ubicación.",
    )
    reason: str | None = Field(
        default=None,
        description="Motivo textual (rechazo del backend, error de GPS).",
    )
    estado: PrestacionStatus | None = Field(
        default=None,
        description="Estado local de la prestación después del intento.",
    )

    @property
    def success(self) -> bool:
        return self.kind in _SUCCESS_KINDS

    @property
    def deferred(self) -> bool:
        """True cuando el cierre quedó en la cola offline y aún no lo confirmó el backend."""

        return self.kind is ResultKind.QUEUED_OFFLINE

    @classmethod
    def completed(cls, prestacion_id: str, *, distance_meters: float | None) -> "ValidationResult":
        return cls(
            kind=ResultKind.COMPLETED,
            prestacion_id=prestacion_id,
            distance_meters=distance_meters,
            estado=PrestacionStatus.COMPLETED,
        )

    @classmethod
    def queued_offline(
        cls, prestacion_id: str, *, distance_meters: float | None, reason: str | None = None
    ) -> "ValidationResult":
        return cls(
            kind=ResultKind.QUEUED_OFFLINE,
            prestacion_id=prestacion_id,
            distance_meters=distance_meters,
            reason=reason,
            estado=PrestacionStatus.QUEUED_OFFLINE,
        )

    @classmethod
    def time_window_failure(
        cls, prestacion_id: str, *, minutes_remaining: int, estado: PrestacionStatus
    ) -> "ValidationResult":
        return cls(
            kind=ResultKind.TIME_WINDOW,
            prestacion_id=prestacion_id,
            minutes_remaining=minutes_remaining,
            estado=estado,
        )

    @classmethod
    def location_failure(
        cls, prestacion_id: str, *, distance_meters: float, estado: PrestacionStatus
    ) -> "ValidationResult":
        return cls(
            kind=ResultKind.LOCATION,
            prestacion_id=prestacion_id,
            distance_meters=distance_meters,
            estado=estado,
        )

    @classmethod
    def location_unavailable(cls, prestacion_id: str, *, reason: str) -> "ValidationResult":
        return cls(kind=ResultKind.LOCATION_UNAVAILABLE, prestacion_id=prestacion_id, reason=reason)

    @classmethod
    def not_found(cls, prestacion_id: str) -> "ValidationResult":
        return cls(kind=ResultKind.NOT_FOUND, prestacion_id=prestacion_id)

    @classmethod
    def already_completed(cls, prestacion_id: str) -> "ValidationResult":
        return cls(
            kind=ResultKind.ALREADY_COMPLETED,
            prestacion_id=prestacion_id,
            estado=PrestacionStatus.COMPLETED,
        )

    @classmethod
    def rejected(
        cls,
        prestacion_id: str,
        *,
        reason: str,
        estado: PrestacionStatus | None,
        distance_meters: float | None = None,
    ) -> "ValidationResult":
        return cls(
            kind=ResultKind.REJECTED,
            prestacion_id=prestacion_id,
            reason=reason,
            estado=estado,
            distance_meters=distance_meters,
        )
