"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Traducen valores del Core (`ValidationResult`, `DrainReport`) a paneles y
  tablas; no deciden nada.
"""

from __future__ import annotations

from datetime import datetime

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.geofence import DEFAULT_RADIUS_METERS
from core.domain.language import Language
from core.domain.models import CompletionAttempt, Prestacion, PrestacionStatus
from core.domain.results import ResultKind, ValidationResult
from core.domain.time_window import availability_label, is_within_window, minutes_past_due
from core.services.offline_sync import DrainReport
from core.services.recovery import RecoveryAction, describe_result, recovery_actions

_RESULT_STYLES: dict[ResultKind, tuple[str, str]] = {
    ResultKind.COMPLETED: ("green", "¡Prestación Completada!"),
    ResultKind.QUEUED_OFFLINE: ("yellow", "Guardada offline"),
    ResultKind.TIME_WINDOW: ("yellow", "Fuera de horario"),
    ResultKind.LOCATION: ("yellow", "Validación de Ubicación"),
    ResultKind.LOCATION_UNAVAILABLE: ("red", "Ubicación no disponible"),
    ResultKind.NOT_FOUND: ("red", "Error"),
    ResultKind.ALREADY_COMPLETED: ("red", "Error"),
    ResultKind.REJECTED: ("red", "Rechazada por el servidor"),
}


_LABELS: dict[Language, dict[str, str]] = {
    Language.SPANISH: {
        "distance": "Distancia medida",
        "actions": "Acciones",
        "links": "Enlaces",
        "past_due": "atrasada {minutes} min",
    },
    Language.ENGLISH: {
        "distance": "Measured distance",
        "actions": "Actions",
        "links": "Links",
        "past_due": "{minutes} min overdue",
    },
}


def print_banner(console: Console) -> None:
    title = Text("Incluir", style="bold cyan")
    subtitle = Text("Cierre de prestaciones • Geocerca • Sincronización offline", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_result_panel(
    result: ValidationResult,
    *,
    language: Language = Language.SPANISH,
    radius_meters: float = DEFAULT_RADIUS_METERS,
    has_device_location: bool = True,
    links: list[tuple[RecoveryAction, str]] | None = None,
) -> Panel:
    labels = _LABELS[language]
    style, title = _RESULT_STYLES[result.kind]
    body = Text()
    body.append(describe_result(result, language, radius_meters=radius_meters) + "\n")
    if result.distance_meters is not None and result.kind is not ResultKind.LOCATION:
        body.append(f"\n{labels['distance']}: {round(result.distance_meters)}m", style="dim")

    actions = recovery_actions(result, has_device_location=has_device_location)
    body.append(f"\n{labels['actions']}: ", style="bold")
    body.append(", ".join(a.value for a in actions))
    if links:
        body.append(f"\n{labels['links']}:", style="bold")
        for action, url in links:
            body.append(f"\n  {action.value}: {url}")
    return Panel(body, title=Text(title, style=f"bold {style}"), border_style=style)


def build_drain_table(report: DrainReport) -> Table:
    table = Table(title="Sincronización offline")
    table.add_column("Prestación", style="cyan", no_wrap=True)
    table.add_column("Resultado", style="white")
    table.add_column("Detalle", style="dim")
    for prestacion_id in report.succeeded:
        table.add_row(prestacion_id, "[green]sincronizada[/green]", "")
    for prestacion_id in report.still_queued:
        table.add_row(prestacion_id, "[yellow]en cola[/yellow]", "se reintentará")
    for prestacion_id in report.abandoned:
        table.add_row(prestacion_id, "[red]abandonada[/red]", "requiere acción del usuario")
    for rejected in report.rejected:
        table.add_row(rejected.prestacion_id, "[red]rechazada[/red]", rejected.reason)
    return table


def build_queue_table(attempts: list[CompletionAttempt], *, max_retries: int) -> Table:
    table = Table(title="Cola offline")
    table.add_column("Prestación", style="cyan", no_wrap=True)
    table.add_column("Intento", style="white")
    table.add_column("Reintentos", style="white")
    table.add_column("Estado", style="white")
    table.add_column("Último error", style="red")
    for attempt in attempts:
        estado = "[red]abandonada[/red]" if attempt.abandoned else "[yellow]pendiente[/yellow]"
        table.add_row(
            attempt.prestacion_id,
            attempt.attempted_at.strftime("%Y-%m-%d %H:%M"),
            f"{attempt.retry_count}/{max_retries}",
            estado,
            attempt.last_error or "",
        )
    return table


def build_agenda_table(
    prestaciones: list[Prestacion],
    *,
    now: datetime,
    language: Language = Language.SPANISH,
) -> Table:
    labels = _LABELS[language]
    table = Table(title="Agenda")
    table.add_column("Prestación", style="cyan", no_wrap=True)
    table.add_column("Horario", style="white")
    table.add_column("Paciente", style="white")
    table.add_column("Estado", style="white")
    table.add_column("Disponibilidad", style="white")
    for prestacion in prestaciones:
        availability = ""
        if prestacion.estado is PrestacionStatus.PENDING:
            label = availability_label(prestacion.scheduled_at, now, language)
            if is_within_window(prestacion.scheduled_at, now):
                availability = f"[green]{label}[/green]"
                overdue = minutes_past_due(prestacion.scheduled_at, now)
                if overdue > 0:
                    availability += f" [dim]({labels['past_due'].format(minutes=overdue)})[/dim]"
            else:
                availability = f"[yellow]{label}[/yellow]"
        table.add_row(
            prestacion.prestacion_id,
            prestacion.scheduled_at.strftime("%Y-%m-%d %H:%M"),
            prestacion.paciente_nombre or prestacion.paciente_id,
            prestacion.estado.value,
            availability,
        )
    return table
