"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Validación estricta en el borde (JSON del backend, cola persistida).
- Serialización estable para la cola offline sin escribir codecs a mano.

Nota:
- Estos modelos describen *qué* es una prestación, no *cómo* se cierra.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


def _assume_utc(value: datetime | None) -> datetime | None:
    # El backend y agendas viejas mandan horarios sin offset: se toman como UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PrestacionStatus(str, Enum):
    """Estados posibles de una prestación dentro del flujo de cierre."""

    PENDING = "pending"
    COMPLETED = "completed"
    QUEUED_OFFLINE = "queued_offline"

    @classmethod
    def from_backend(cls, value: str | None, default: "PrestacionStatus") -> "PrestacionStatus":
        """Traduce el estado informado por el backend; valores desconocidos caen en `default`."""

        if not value:
            return default
        normalized = value.strip().lower()
        if normalized in ("completed", "completada", "realizada"):
            return cls.COMPLETED
        if normalized in ("pending", "pendiente"):
            return cls.PENDING
        return default


class Coordinate(BaseModel):
    """Par latitud/longitud en grados decimales (WGS84).

    El rango no se valida aquí: `core.domain.geo.ensure_valid` lo hace y
    levanta `InvalidCoordinate`, que es el error que esperan los llamadores.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., description="Latitud en grados.")
    longitude: float = Field(..., description="Longitud en grados.")

    def short(self) -> str:
        return f"{self.latitude:.5f},{self.longitude:.5f}"


class Prestacion(BaseModel):
    """Visita médica programada que un prestador debe completar en domicilio."""

    prestacion_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Identificador de la prestación en el backend.",
    )
    scheduled_at: datetime = Field(
        ...,
        description="Fecha/hora programada; sin offset se asume UTC.",
    )
    paciente_id: str = Field(
        ...,
        min_length=1,
        description="Referencia al paciente.",
    )
    estado: PrestacionStatus = Field(
        default=PrestacionStatus.PENDING,
        description="Estado de cierre.",
    )
    notas: str = Field(
        default="",
        max_length=10_000,
        description="Observaciones cargadas al completar.",
    )
    ubicacion_paciente: Coordinate = Field(
        ...,
        description="Coordenada registrada del domicilio del paciente.",
    )
    paciente_nombre: str | None = Field(default=None, description="Nombre para mostrar.")
    paciente_direccion: str | None = Field(default=None, description="Dirección legible.")
    paciente_telefono: str | None = Field(default=None, description="Teléfono de contacto.")
    completada_en: datetime | None = Field(
        default=None,
        description="Momento del cierre confirmado o encolado.",
    )
    ubicacion_cierre: Coordinate | None = Field(
        default=None,
        description="Posición reportada por el dispositivo al cerrar.",
    )

    @field_validator("scheduled_at", "completada_en")
    @classmethod
    def _timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class CompletionAttempt(BaseModel):
    """Intento de cierre que no llegó al backend y espera en la cola offline."""

    prestacion_id: str = Field(..., min_length=1)
    coordinate: Coordinate
    notas: str = Field(default="", max_length=10_000)
    attempted_at: datetime
    retry_count: int = Field(default=0, ge=0)
    abandoned: bool = Field(
        default=False,
        description="True cuando agotó los reintentos; queda visible hasta que el usuario decida.",
    )
    last_error: str | None = Field(default=None, description="Último motivo de fallo.")

    @field_validator("attempted_at")
    @classmethod
    def _timezone_aware(cls, value: datetime) -> datetime:
        return _assume_utc(value)
