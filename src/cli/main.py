"""CLI de Incluir (Typer).

Por qué una CLI:
- Permite operar el núcleo de cierre (soporte, QA, scripts de campo) sin la
  app móvil.
- Cada comando arma sus colaboradores desde `AppSettings` y delega todo en
  `core.services`; acá solo hay parsing y presentación.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import typer
from rich.console import Console

from adapters.fixed_location import FixedLocationProvider
from adapters.http_backend import HttpBackendWriter
from adapters.json_store import JsonPrestacionRepository, JsonQueueStore
from cli.doctor import app as doctor_app
from cli.ui_components import build_agenda_table, build_drain_table, build_queue_table, build_result_panel
from core.config import AppSettings
from core.domain.errors import InvalidCoordinate, OverrideNotAllowed
from core.domain.models import Coordinate, Prestacion
from core.domain.overrides import DevOverridePolicy
from core.domain.results import ValidationResult
from core.logging_config import configure_logging
from core.services.locks import KeyedLocks
from core.services.offline_sync import DrainReport, OfflineSyncQueue
from core.services.prestacion_closer import PrestacionCloser, utc_now
from core.services.recovery import RecoveryAction, action_links

app = typer.Typer(
    no_args_is_help=True,
    help="Cierre de prestaciones con validación de horario/ubicación y cola offline.",
)
app.add_typer(doctor_app, name="doctor")

_console = Console()


@dataclass
class Runtime:
    """Colaboradores armados a partir de la configuración."""

    settings: AppSettings
    repository: JsonPrestacionRepository
    queue: OfflineSyncQueue


def build_runtime(settings: AppSettings) -> Runtime:
    repository = JsonPrestacionRepository(settings.agenda_file)
    queue = OfflineSyncQueue(
        JsonQueueStore(settings.queue_file),
        repository,
        # Lock por prestación también entre procesos de la CLI.
        locks=KeyedLocks(settings.data_dir / "locks"),
        max_retries=settings.sync_max_retries,
        write_timeout_seconds=settings.http_timeout_seconds,
    )
    return Runtime(settings=settings, repository=repository, queue=queue)


def build_writer(settings: AppSettings) -> HttpBackendWriter:
    return HttpBackendWriter(settings)


@app.callback()
def _main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Logs en nivel DEBUG.")) -> None:
    settings = AppSettings()
    configure_logging("DEBUG" if verbose else settings.log_level)


async def _close(
    settings: AppSettings,
    prestacion_id: str,
    coordinate: Coordinate | None,
    notas: str,
    policy: DevOverridePolicy,
) -> tuple[ValidationResult, Prestacion | None]:
    runtime = build_runtime(settings)
    async with build_writer(settings) as writer:
        closer = PrestacionCloser(
            runtime.repository,
            writer,
            runtime.queue,
            radius_meters=settings.geofence_radius_meters,
            write_timeout_seconds=settings.http_timeout_seconds,
            location_timeout_seconds=settings.location_timeout_seconds,
        )
        result = await closer.close_with_device_location(
            prestacion_id, FixedLocationProvider(coordinate), notas, policy
        )
    return result, await runtime.repository.get(prestacion_id)


def _links(
    settings: AppSettings,
    result: ValidationResult,
    prestacion: Prestacion | None,
    origin: Coordinate | None,
) -> list[tuple[RecoveryAction, str]]:
    return action_links(
        result,
        prestacion.ubicacion_paciente if prestacion is not None else None,
        origin=origin,
        support_phone=settings.support_phone,
        support_whatsapp=settings.support_whatsapp,
        language=settings.default_language,
    )


@app.command()
def cerrar(
    prestacion_id: str = typer.Argument(..., help="Identificador de la prestación."),
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitud reportada por el dispositivo."),
    lng: Optional[float] = typer.Option(None, "--lng", help="Longitud reportada por el dispositivo."),
    notas: str = typer.Option("", "--notas", help="Observaciones de la prestación."),
    skip_time: bool = typer.Option(False, "--skip-time", help="[dev] Ignorar la ventana horaria."),
    skip_location: bool = typer.Option(False, "--skip-location", help="[dev] Ignorar la geocerca."),
) -> None:
    """Completa una prestación validando horario y ubicación."""

    settings = AppSettings()
    try:
        policy = DevOverridePolicy.from_settings(
            settings,
            skip_time_validation=skip_time or None,
            skip_location_validation=skip_location or None,
        )
    except OverrideNotAllowed as exc:
        raise typer.BadParameter(str(exc)) from exc

    coordinate = Coordinate(latitude=lat, longitude=lng) if lat is not None and lng is not None else None
    try:
        result, prestacion = asyncio.run(_close(settings, prestacion_id, coordinate, notas, policy))
    except InvalidCoordinate as exc:
        raise typer.BadParameter(str(exc)) from exc

    _console.print(
        build_result_panel(
            result,
            language=settings.default_language,
            radius_meters=settings.geofence_radius_meters,
            has_device_location=coordinate is not None,
            links=_links(settings, result, prestacion, coordinate),
        )
    )
    if not result.success:
        raise typer.Exit(code=1)


async def _drain(settings: AppSettings) -> DrainReport:
    runtime = build_runtime(settings)
    async with build_writer(settings) as writer:
        return await runtime.queue.drain(writer)


@app.command()
def agenda() -> None:
    """Lista las prestaciones de la agenda local con su disponibilidad."""

    settings = AppSettings()
    prestaciones = asyncio.run(build_runtime(settings).repository.list_all())
    if not prestaciones:
        _console.print("[dim]La agenda local está vacía.[/dim]")
        return
    _console.print(build_agenda_table(prestaciones, now=utc_now(), language=settings.default_language))


@app.command()
def sincronizar() -> None:
    """Reintenta contra el backend los cierres guardados offline."""

    settings = AppSettings()
    report = asyncio.run(_drain(settings))
    if report.total == 0:
        _console.print("[dim]No hay cierres pendientes de sincronizar.[/dim]")
        return
    _console.print(build_drain_table(report))
    if report.abandoned or report.rejected:
        raise typer.Exit(code=1)


@app.command()
def pendientes() -> None:
    """Lista los cierres en cola y los abandonados."""

    settings = AppSettings()
    runtime = build_runtime(settings)
    asyncio.run(runtime.queue.restore())
    attempts = runtime.queue.pending() + runtime.queue.abandoned()
    if not attempts:
        _console.print("[dim]La cola offline está vacía.[/dim]")
        return
    _console.print(build_queue_table(attempts, max_retries=runtime.queue.max_retries))


async def _retry(settings: AppSettings, prestacion_id: str) -> DrainReport:
    runtime = build_runtime(settings)
    async with build_writer(settings) as writer:
        return await runtime.queue.retry(prestacion_id, writer)


@app.command()
def reintentar(prestacion_id: str = typer.Argument(..., help="Prestación a reintentar.")) -> None:
    """Reintento manual de un cierre encolado (también si fue abandonado)."""

    settings = AppSettings()
    report = asyncio.run(_retry(settings, prestacion_id))
    if report.total == 0:
        _console.print(f"[yellow]No hay un cierre encolado para {prestacion_id}.[/yellow]")
        raise typer.Exit(code=1)
    _console.print(build_drain_table(report))
    if not report.succeeded:
        raise typer.Exit(code=1)


@app.command()
def descartar(prestacion_id: str = typer.Argument(..., help="Prestación a descartar.")) -> None:
    """Descarta un cierre encolado; la prestación vuelve a quedar pendiente."""

    settings = AppSettings()
    runtime = build_runtime(settings)
    if not asyncio.run(runtime.queue.discard(prestacion_id)):
        _console.print(f"[yellow]No hay un cierre encolado para {prestacion_id}.[/yellow]")
        raise typer.Exit(code=1)
    _console.print(f"[green]Cierre de {prestacion_id} descartado.[/green]")


@app.command()
def reencolar(prestacion_id: str = typer.Argument(..., help="Prestación abandonada a reencolar.")) -> None:
    """Devuelve un cierre abandonado a la cola con los reintentos en cero."""

    settings = AppSettings()
    runtime = build_runtime(settings)
    if not asyncio.run(runtime.queue.requeue(prestacion_id)):
        _console.print(f"[yellow]{prestacion_id} no está abandonada.[/yellow]")
        raise typer.Exit(code=1)
    _console.print(f"[green]{prestacion_id} vuelve a la cola.[/green]")


def run() -> None:
    app()
