"""Backend REST de prestaciones (implementa `BackendWriter`).

Clasificación de respuestas:
- 2xx -> `BackendAck`.
- 4xx -> `BackendRejected` (regla de negocio: ya completada, no existe...).
- 5xx y cualquier `httpx.RequestError` (transporte, timeouts, redirecciones,
  decodificación) -> `ConnectivityError` (se encola).
- Un 2xx con `completada_en` ilegible igual es un ack; la fecha se descarta.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.errors import BackendRejected, ConnectivityError
from core.domain.models import Coordinate
from core.interfaces.backend import BackendAck, BackendWriter


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _parse_ack(prestacion_id: str, payload: dict[str, Any]) -> BackendAck:
    # El cierre ya fue aceptado: un `completada_en` ilegible no lo invalida.
    try:
        return BackendAck(prestacion_id=prestacion_id, confirmed_at=payload.get("completada_en"))
    except ValidationError:
        return BackendAck(prestacion_id=prestacion_id)


class HttpBackendWriter(BackendWriter):
    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._client = client or build_async_client(self._settings)

    async def __aenter__(self) -> "HttpBackendWriter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete_prestacion(
        self,
        prestacion_id: str,
        coordinate: Coordinate,
        notas: str,
        timestamp: datetime,
    ) -> BackendAck:
        body = {
            "lat": coordinate.latitude,
            "lng": coordinate.longitude,
            "notas": notas,
            "completada_en": timestamp.isoformat(),
        }
        try:
            response = await self._client.post(f"/prestaciones/{prestacion_id}/completar", json=body)
        except httpx.RequestError as exc:
            # Transporte, timeouts, redirecciones en loop y cuerpos que no se pueden decodificar.
            raise ConnectivityError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 500:
            raise ConnectivityError(f"backend_http_{response.status_code}")

        payload = _json_or_empty(response)
        if response.status_code >= 400:
            if response.status_code == 404:
                reason = "not_found"
            else:
                reason = str(payload.get("detail") or payload.get("reason") or f"backend_http_{response.status_code}")
            estado = payload.get("estado")
            raise BackendRejected(reason, backend_status=estado if isinstance(estado, str) else None)

        return _parse_ack(prestacion_id, payload)

    async def ping(self) -> tuple[bool, str]:
        """Chequeo de conectividad para `doctor`."""

        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as exc:
            return False, str(exc) or type(exc).__name__
        return True, f"HTTP {response.status_code}"
