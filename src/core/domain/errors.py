"""Taxonomía de errores del núcleo de cierre.

Por qué excepciones tipadas:
- Los adaptadores (HTTP, GPS) señalizan fallos con excepciones concretas.
- El orquestador las traduce a `ValidationResult`; el llamador nunca tiene
  que adivinar si un fallo es de red o de negocio.
"""

from __future__ import annotations


class PrestacionError(Exception):
    """Base de todos los errores del núcleo."""


class InvalidCoordinate(PrestacionError, ValueError):
    """Latitud/longitud fuera de rango o no finitas. Fatal, no se reintenta."""

    def __init__(self, latitude: float, longitude: float) -> None:
        super().__init__(f"invalid coordinate: lat={latitude!r} lng={longitude!r}")
        self.latitude = latitude
        self.longitude = longitude


class OverrideNotAllowed(PrestacionError):
    """Se intentó activar un bypass de validación fuera de desarrollo."""


class ConnectivityError(PrestacionError):
    """El backend no fue alcanzable (red caída, timeout, 5xx)."""


class BackendRejected(PrestacionError):
    """El backend rechazó el cierre por una regla de negocio.

    `backend_status` es el estado que el backend reporta para la prestación
    (p.ej. "completed" si otro actor ya la cerró), si lo informa.
    """

    def __init__(self, reason: str, *, backend_status: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.backend_status = backend_status


class LocationError(PrestacionError):
    """No se pudo obtener una posición del dispositivo."""


class LocationPermissionDenied(LocationError):
    """El usuario no concedió permisos de ubicación."""


class LocationTimeout(LocationError):
    """El GPS no entregó un fix dentro del timeout."""
