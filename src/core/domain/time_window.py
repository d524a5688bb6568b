"""Ventana temporal de cierre.

Regla:
- La ventana abre exactamente en el horario programado (límite inferior inclusivo).
- No hay límite superior: una visita vencida se puede completar en cualquier momento.
"""

from __future__ import annotations

import math
from datetime import datetime

from core.domain.language import Language


def is_within_window(scheduled: datetime, now: datetime) -> bool:
    return now >= scheduled


def minutes_remaining(scheduled: datetime, now: datetime) -> int:
    """Minutos hasta que abra la ventana, redondeando hacia arriba.

    Positivo antes del horario, 0 en el instante exacto y negativo una vez
    vencido (la magnitud son los minutos de atraso).
    """

    seconds = (scheduled - now).total_seconds()
    return math.ceil(seconds / 60)


def minutes_past_due(scheduled: datetime, now: datetime) -> int:
    return max(0, -minutes_remaining(scheduled, now))


def availability_label(scheduled: datetime, now: datetime, language: Language = Language.SPANISH) -> str:
    """Texto corto para el badge de disponibilidad de la agenda."""

    if is_within_window(scheduled, now):
        return "Disponible" if language is Language.SPANISH else "Available"
    remaining = minutes_remaining(scheduled, now)
    if language is Language.SPANISH:
        return f"{remaining}min restantes"
    return f"{remaining}min remaining"
