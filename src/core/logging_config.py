"""Logging de la aplicación.

Por qué stdlib `logging` + Rich:
- Los módulos del Core solo piden `get_logger(__name__)`; no saben dónde
  termina el log.
- La CLI ya usa Rich para tablas/paneles, así que el handler de consola es
  `RichHandler` para que ambos convivan en la misma terminal.

Convención: el mensaje es un nombre de evento estable en snake_case y el
contexto va en `extra=` (nunca se loguean notas clínicas).
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_EVENT_FIELDS = (
    "prestacion_id",
    "kind",
    "retry_count",
    "distance_meters",
    "count",
    "summary",
    "reason",
    "error",
)


class _EventContextFilter(logging.Filter):
    """Agrega al mensaje los campos conocidos que vinieron en `extra=`."""

    def filter(self, record: logging.LogRecord) -> bool:
        parts = [f"{name}={getattr(record, name)}" for name in _EVENT_FIELDS if hasattr(record, name)]
        record.event_context = " ".join(parts)
        return True


def configure_logging(level: str = "INFO", *, console: Console | None = None) -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.addFilter(_EventContextFilter())
    handler.setFormatter(logging.Formatter("%(message)s %(event_context)s"))
    root_logger.addHandler(handler)
    logging.captureWarnings(True)
    # httpx loguea cada request en INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
