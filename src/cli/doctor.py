"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_backend import HttpBackendWriter
from adapters.json_store import JsonQueueStore
from core.config import AppSettings, write_user_env_vars
from core.domain.errors import OverrideNotAllowed
from core.domain.overrides import DevOverridePolicy, Environment

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_backend(settings: AppSettings) -> tuple[bool, str]:
    async with HttpBackendWriter(settings) as writer:
        return await writer.ping()


def _check_data_dir(settings: AppSettings) -> tuple[bool, str]:
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        probe = settings.data_dir / ".doctor"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink()
        return True, str(settings.data_dir)
    except OSError as exc:
        return False, str(exc)


async def _queue_counts(settings: AppSettings) -> tuple[int, int]:
    attempts = await JsonQueueStore(settings.queue_file).load_all()
    abandoned = sum(1 for a in attempts.values() if a.abandoned)
    return len(attempts) - abandoned, abandoned


@app.command()
def run() -> None:
    """Run baseline diagnostics and show dev-mode override status."""

    settings = AppSettings()

    table = Table(title="Incluir Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Entorno y overrides
    dev = settings.environment is Environment.DEVELOPMENT
    table.add_row("Environment", "DEV" if dev else "OK", settings.environment.value)
    try:
        policy = DevOverridePolicy.from_settings(settings)
        table.add_row("SkipTime", "ON" if policy.skip_time_validation else "OFF", "dev override")
        table.add_row("SkipLocation", "ON" if policy.skip_location_validation else "OFF", "dev override")
    except OverrideNotAllowed as exc:
        table.add_row("Overrides", "FAIL", str(exc))

    table.add_row("Geofence radius", "OK", f"{settings.geofence_radius_meters:g} m")
    table.add_row("Backend base_url", "OK", settings.backend_base_url)
    if settings.backend_api_key:
        table.add_row("Backend key", "OK", "Bearer token set")
    else:
        table.add_row("Backend key", "MISSING", "Run `incluir doctor setup-backend`")

    ok_backend, detail_backend = asyncio.run(_check_backend(settings))
    table.add_row("Backend connectivity", "OK" if ok_backend else "FAIL", detail_backend)

    ok_data, detail_data = _check_data_dir(settings)
    table.add_row("Data dir", "OK" if ok_data else "FAIL", detail_data)

    if ok_data:
        pending, abandoned = asyncio.run(_queue_counts(settings))
        table.add_row("Offline queue", "OK" if not abandoned else "ATTENTION", f"{pending} pending, {abandoned} abandoned")

    _console.print(table)

    if not ok_backend:
        _console.print(
            "\n[yellow]Note:[/yellow] Completions still work offline; they are queued and synced with `incluir sincronizar`."
        )


@app.command(name="setup-backend")
def setup_backend() -> None:
    """Interactive backend setup (stores config in the user config .env)."""

    base_url = typer.prompt("Backend base URL", default=AppSettings().backend_base_url, show_default=True).strip()
    api_key = typer.prompt("Backend API key", hide_input=True, confirmation_prompt=False).strip()

    if not base_url:
        raise typer.BadParameter("base_url is required")

    env_path = write_user_env_vars(
        {
            "INCLUIR_BACKEND_BASE_URL": base_url,
            "INCLUIR_BACKEND_API_KEY": api_key,
        }
    )

    _console.print(f"[green]Saved backend config to:[/green] {env_path}")
