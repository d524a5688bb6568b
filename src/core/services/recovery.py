"""Mapeo de resultados de cierre a acciones de recuperación para la UI.

Por qué separado del orquestador:
- El cierre devuelve valores (`ValidationResult`); qué diálogo, banner o
  botón mostrar es una decisión de presentación.
- Es una función pura y exhaustiva sobre `ResultKind`, fácil de testear.
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import quote

from core.domain.geofence import DEFAULT_RADIUS_METERS
from core.domain.language import Language
from core.domain.models import Coordinate
from core.domain.results import ResultKind, ValidationResult


class RecoveryAction(str, Enum):
    CONTINUE = "continue"
    SYNC_LATER = "sync_later"
    WAIT_AND_RETRY = "wait_and_retry"
    GET_DIRECTIONS = "get_directions"
    CONTACT_SUPPORT = "contact_support"
    RETRY_LOCATION = "retry_location"
    REFRESH = "refresh"


_ACTIONS: dict[ResultKind, tuple[RecoveryAction, ...]] = {
    ResultKind.COMPLETED: (RecoveryAction.CONTINUE,),
    ResultKind.QUEUED_OFFLINE: (RecoveryAction.SYNC_LATER, RecoveryAction.CONTINUE),
    ResultKind.TIME_WINDOW: (RecoveryAction.WAIT_AND_RETRY,),
    ResultKind.LOCATION: (RecoveryAction.GET_DIRECTIONS, RecoveryAction.CONTACT_SUPPORT),
    ResultKind.LOCATION_UNAVAILABLE: (RecoveryAction.RETRY_LOCATION, RecoveryAction.CONTACT_SUPPORT),
    ResultKind.NOT_FOUND: (RecoveryAction.REFRESH,),
    ResultKind.ALREADY_COMPLETED: (RecoveryAction.REFRESH,),
    ResultKind.REJECTED: (RecoveryAction.REFRESH, RecoveryAction.CONTACT_SUPPORT),
}


def recovery_actions(result: ValidationResult, *, has_device_location: bool = True) -> list[RecoveryAction]:
    """Acciones sugeridas para un resultado.

    Sin posición del dispositivo no se ofrece "cómo llegar".
    """

    actions = list(_ACTIONS[result.kind])
    if not has_device_location and RecoveryAction.GET_DIRECTIONS in actions:
        actions.remove(RecoveryAction.GET_DIRECTIONS)
    return actions


def describe_result(
    result: ValidationResult,
    language: Language = Language.SPANISH,
    *,
    radius_meters: float = DEFAULT_RADIUS_METERS,
) -> str:
    es = language is Language.SPANISH
    kind = result.kind

    if kind is ResultKind.COMPLETED:
        if es:
            return "La prestación se completó exitosamente y se ha actualizado en el sistema."
        return "The visit was completed and updated in the system."
    if kind is ResultKind.QUEUED_OFFLINE:
        if es:
            return "Error de conexión. La prestación se guardó offline y se sincronizará automáticamente."
        return "Connection error. The visit was saved offline and will sync automatically."
    if kind is ResultKind.TIME_WINDOW:
        minutes = abs(result.minutes_remaining or 0)
        if es:
            return f"Faltan {minutes} minutos para completar esta prestación."
        return f"{minutes} minutes left before this visit can be completed."
    if kind is ResultKind.LOCATION:
        distance = round(result.distance_meters or 0.0)
        radius = round(radius_meters)
        if es:
            return (
                "No estás en el domicilio del paciente.\n\n"
                f"Distancia actual: {distance}m (máximo permitido: {radius}m)"
            )
        return f"You are not at the patient's address.\n\nCurrent distance: {distance}m (max allowed: {radius}m)"
    if kind is ResultKind.LOCATION_UNAVAILABLE:
        if es:
            return (
                "No se pudo obtener tu ubicación. Verifica que el GPS esté activado "
                "y los permisos estén concedidos."
            )
        return "Could not get your location. Check that GPS is on and permissions are granted."
    if kind is ResultKind.NOT_FOUND:
        return "La prestación no existe." if es else "The visit does not exist."
    if kind is ResultKind.ALREADY_COMPLETED:
        return "La prestación ya fue completada." if es else "The visit was already completed."
    if es:
        return f"El servidor rechazó el cierre: {result.reason}"
    return f"The server rejected the completion: {result.reason}"


def build_map_url(coordinate: Coordinate) -> str:
    return f"https://maps.google.com/?q={coordinate.latitude},{coordinate.longitude}"


def build_directions_url(origin: Coordinate, destination: Coordinate) -> str:
    return (
        "https://www.google.com/maps/dir/"
        f"{origin.latitude},{origin.longitude}/{destination.latitude},{destination.longitude}"
    )


def build_whatsapp_url(phone: str, text: str) -> str:
    return f"whatsapp://send?phone={quote(phone)}&text={quote(text)}"


def build_call_url(phone: str) -> str:
    return f"tel:{phone}"


def action_links(
    result: ValidationResult,
    destination: Coordinate | None,
    *,
    origin: Coordinate | None = None,
    support_phone: str = "",
    support_whatsapp: str = "",
    language: Language = Language.SPANISH,
) -> list[tuple[RecoveryAction, str]]:
    """URLs concretas para las acciones sugeridas.

    `destination` es el domicilio del paciente; `origin`, la posición del
    dispositivo. Sin origen, "cómo llegar" abre el mapa del domicilio.
    Las acciones sin dato para armar la URL (p.ej. soporte sin teléfono)
    se omiten.
    """

    links: list[tuple[RecoveryAction, str]] = []
    for action in recovery_actions(result):
        if action is RecoveryAction.GET_DIRECTIONS and destination is not None:
            if origin is not None:
                links.append((action, build_directions_url(origin, destination)))
            else:
                links.append((action, build_map_url(destination)))
        elif action is RecoveryAction.CONTACT_SUPPORT:
            if support_whatsapp:
                if language is Language.SPANISH:
                    text = f"Necesito ayuda con la prestación {result.prestacion_id}"
                else:
                    text = f"I need help with visit {result.prestacion_id}"
                links.append((action, build_whatsapp_url(support_whatsapp, text)))
            if support_phone:
                links.append((action, build_call_url(support_phone)))
    return links
