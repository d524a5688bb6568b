from __future__ import annotations

import asyncio
import logging

import httpx
import pytest
from typer.testing import CliRunner

import cli.main as cli_main
from conftest import PATIENT_HOME, make_attempt, make_prestacion
from adapters.http_backend import HttpBackendWriter
from adapters.http_client import build_async_client
from adapters.json_store import JsonPrestacionRepository, JsonQueueStore
from core.config import AppSettings
from core.domain.models import PrestacionStatus

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _seed_agenda(data_dir, *prestaciones) -> None:
    async def seed():
        repo = JsonPrestacionRepository(data_dir / "prestaciones.json")
        for prestacion in prestaciones:
            await repo.save(prestacion)

    asyncio.run(seed())


def _mock_backend(monkeypatch, handler) -> None:
    def build_writer(settings: AppSettings) -> HttpBackendWriter:
        client = build_async_client(settings, transport=httpx.MockTransport(handler))
        return HttpBackendWriter(settings, client=client)

    monkeypatch.setattr(cli_main, "build_writer", build_writer)


def test_pendientes_con_cola_vacia(data_dir) -> None:
    result = runner.invoke(cli_main.app, ["pendientes"])

    assert result.exit_code == 0
    assert "vacía" in result.stdout


def test_pendientes_lista_la_cola(data_dir) -> None:
    asyncio.run(JsonQueueStore(data_dir / "cola_offline.json").put(make_attempt("p-7", retry_count=2)))

    result = runner.invoke(cli_main.app, ["pendientes"])

    assert result.exit_code == 0
    assert "p-7" in result.stdout
    assert "2/5" in result.stdout


def test_override_en_produccion_es_error_de_uso(data_dir) -> None:
    result = runner.invoke(cli_main.app, ["cerrar", "p-1", "--skip-time"])

    assert result.exit_code == 2


def test_cerrar_en_el_domicilio(data_dir, monkeypatch) -> None:
    _seed_agenda(data_dir, make_prestacion("p-1"))
    _mock_backend(monkeypatch, lambda request: httpx.Response(200, json={}))

    result = runner.invoke(
        cli_main.app,
        ["cerrar", "p-1", "--lat", str(PATIENT_HOME.latitude), "--lng", str(PATIENT_HOME.longitude)],
    )

    assert result.exit_code == 0, result.stdout
    assert "Completada" in result.stdout
    stored = asyncio.run(JsonPrestacionRepository(data_dir / "prestaciones.json").get("p-1"))
    assert stored is not None and stored.estado is PrestacionStatus.COMPLETED


def test_cerrar_sin_conexion_queda_en_cola(data_dir, monkeypatch) -> None:
    _seed_agenda(data_dir, make_prestacion("p-1"))

    def offline(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline")

    _mock_backend(monkeypatch, offline)

    result = runner.invoke(
        cli_main.app,
        ["cerrar", "p-1", "--lat", str(PATIENT_HOME.latitude), "--lng", str(PATIENT_HOME.longitude)],
    )

    assert result.exit_code == 0, result.stdout
    queued = asyncio.run(JsonQueueStore(data_dir / "cola_offline.json").load_all())
    assert list(queued) == ["p-1"]


def test_cerrar_sin_ubicacion_falla(data_dir, monkeypatch) -> None:
    _seed_agenda(data_dir, make_prestacion("p-1"))
    _mock_backend(monkeypatch, lambda request: httpx.Response(200, json={}))

    result = runner.invoke(cli_main.app, ["cerrar", "p-1"])

    assert result.exit_code == 1


def test_sincronizar_vacia_la_cola(data_dir, monkeypatch) -> None:
    _seed_agenda(data_dir, make_prestacion("p-1", estado=PrestacionStatus.QUEUED_OFFLINE))
    asyncio.run(JsonQueueStore(data_dir / "cola_offline.json").put(make_attempt("p-1")))
    _mock_backend(monkeypatch, lambda request: httpx.Response(200, json={}))

    result = runner.invoke(cli_main.app, ["sincronizar"])

    assert result.exit_code == 0, result.stdout
    assert asyncio.run(JsonQueueStore(data_dir / "cola_offline.json").load_all()) == {}


def test_descartar_inexistente(data_dir) -> None:
    result = runner.invoke(cli_main.app, ["descartar", "p-404"])

    assert result.exit_code == 1


def test_agenda_lista_las_prestaciones(data_dir) -> None:
    _seed_agenda(data_dir, make_prestacion("p-2"), make_prestacion("p-1"))

    result = runner.invoke(cli_main.app, ["agenda"])

    assert result.exit_code == 0
    assert "p-1" in result.stdout
    assert "p-2" in result.stdout
    assert "Disponible" in result.stdout


def test_cerrar_lejos_muestra_como_llegar_y_soporte(data_dir, monkeypatch) -> None:
    monkeypatch.setenv("INCLUIR_SUPPORT_PHONE", "+5491100000001")
    _seed_agenda(data_dir, make_prestacion("p-1"))
    _mock_backend(monkeypatch, lambda request: httpx.Response(200, json={}))

    result = runner.invoke(cli_main.app, ["cerrar", "p-1", "--lat", "-34.7", "--lng", "-58.3816"])

    assert result.exit_code == 1
    assert "google.com/maps/dir" in result.stdout
    assert "tel:+5491100000001" in result.stdout
