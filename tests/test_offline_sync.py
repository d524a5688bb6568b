from __future__ import annotations

import asyncio

import pytest

from conftest import (
    BlockingBackendWriter,
    InMemoryPrestacionRepository,
    InMemoryQueueStore,
    ScriptedBackendWriter,
    make_attempt,
    make_prestacion,
)
from adapters.json_store import JsonQueueStore
from core.domain.errors import BackendRejected, ConnectivityError
from core.domain.models import PrestacionStatus
from core.services.locks import KeyedLocks
from core.services.offline_sync import OfflineSyncQueue


def _queued_repo(*ids: str) -> InMemoryPrestacionRepository:
    return InMemoryPrestacionRepository(
        *(make_prestacion(pid, estado=PrestacionStatus.QUEUED_OFFLINE) for pid in ids)
    )


def test_un_intento_por_prestacion_el_nuevo_reemplaza_al_viejo() -> None:
    async def scenario():
        store = InMemoryQueueStore()
        queue = OfflineSyncQueue(store, _queued_repo("p-1"))
        await queue.enqueue(make_attempt("p-1", notas="viejo", retry_count=3))
        await queue.enqueue(make_attempt("p-1", notas="nuevo"))
        return queue, store

    queue, store = asyncio.run(scenario())

    pending = queue.pending()
    assert len(pending) == 1
    assert pending[0].notas == "nuevo"
    assert pending[0].retry_count == 0
    assert store.data["p-1"].notas == "nuevo"


def test_drain_con_un_exito_y_un_fallo_da_conjuntos_disjuntos() -> None:
    async def scenario():
        repo = _queued_repo("ok", "ko")
        queue = OfflineSyncQueue(InMemoryQueueStore(), repo)
        await queue.enqueue(make_attempt("ok", notas="sincronizada"))
        await queue.enqueue(make_attempt("ko"))
        writer = ScriptedBackendWriter(ko=[ConnectivityError("still offline")])
        report = await queue.drain(writer)
        return report, repo, queue

    report, repo, queue = asyncio.run(scenario())

    assert report.succeeded == ["ok"]
    assert report.still_queued == ["ko"]
    assert set(report.succeeded).isdisjoint(report.still_queued)
    assert len(report.succeeded) + len(report.still_queued) == 2
    assert repo.items["ok"].estado is PrestacionStatus.COMPLETED
    assert repo.items["ok"].notas == "sincronizada"
    assert repo.items["ko"].estado is PrestacionStatus.QUEUED_OFFLINE
    remaining = queue.get("ko")
    assert remaining is not None
    assert remaining.retry_count == 1
    assert remaining.last_error == "still offline"


def test_supera_max_reintentos_y_pasa_a_abandonada() -> None:
    async def scenario():
        repo = _queued_repo("p-1")
        store = InMemoryQueueStore()
        queue = OfflineSyncQueue(store, repo, max_retries=2)
        await queue.enqueue(make_attempt("p-1"))
        writer = ScriptedBackendWriter(**{"p-1": [ConnectivityError("a"), ConnectivityError("b")]})
        first = await queue.drain(writer)
        second = await queue.drain(writer)
        third = await queue.drain(writer)
        return first, second, third, queue, store, writer, repo

    first, second, third, queue, store, writer, repo = asyncio.run(scenario())

    assert first.still_queued == ["p-1"]
    assert second.abandoned == ["p-1"]
    assert third.total == 0
    assert len(writer.calls) == 2
    assert queue.pending() == []
    assert [a.prestacion_id for a in queue.abandoned()] == ["p-1"]
    # Persistido: sobrevive reinicios y sigue visible para el usuario.
    assert store.data["p-1"].abandoned is True
    assert repo.items["p-1"].estado is PrestacionStatus.QUEUED_OFFLINE


def test_max_retries_por_defecto_es_5() -> None:
    async def scenario():
        queue = OfflineSyncQueue(InMemoryQueueStore(), _queued_repo("p-1"))
        await queue.enqueue(make_attempt("p-1"))
        writer = ScriptedBackendWriter(**{"p-1": [ConnectivityError("x")] * 10})
        reports = [await queue.drain(writer) for _ in range(6)]
        return reports, queue

    reports, queue = asyncio.run(scenario())

    assert queue.max_retries == 5
    assert [bool(r.abandoned) for r in reports] == [False, False, False, False, True, False]


def test_rechazo_en_drain_se_reporta_y_reconcilia() -> None:
    async def scenario():
        repo = _queued_repo("p-1")
        queue = OfflineSyncQueue(InMemoryQueueStore(), repo)
        await queue.enqueue(make_attempt("p-1"))
        writer = ScriptedBackendWriter(**{"p-1": [BackendRejected("ya completada", backend_status="completed")]})
        report = await queue.drain(writer)
        return report, repo, queue

    report, repo, queue = asyncio.run(scenario())

    assert [r.prestacion_id for r in report.rejected] == ["p-1"]
    assert report.rejected[0].reason == "ya completada"
    assert report.succeeded == [] and report.still_queued == []
    assert repo.items["p-1"].estado is PrestacionStatus.COMPLETED
    assert queue.get("p-1") is None


def test_restore_retoma_lo_persistido() -> None:
    async def scenario():
        store = InMemoryQueueStore(make_attempt("p-1"), make_attempt("p-2", retry_count=1))
        repo = _queued_repo("p-1", "p-2")
        queue = OfflineSyncQueue(store, repo)
        report = await queue.drain(ScriptedBackendWriter())
        return report, store, repo

    report, store, repo = asyncio.run(scenario())

    assert sorted(report.succeeded) == ["p-1", "p-2"]
    assert store.data == {}
    assert all(p.estado is PrestacionStatus.COMPLETED for p in repo.items.values())


def test_reencolar_y_descartar_abandonadas() -> None:
    async def scenario():
        repo = _queued_repo("a", "b")
        queue = OfflineSyncQueue(InMemoryQueueStore(), repo, max_retries=1)
        await queue.enqueue(make_attempt("a"))
        await queue.enqueue(make_attempt("b"))
        await queue.drain(ScriptedBackendWriter(a=[ConnectivityError("x")], b=[ConnectivityError("x")]))
        requeued = await queue.requeue("a")
        discarded = await queue.discard("b")
        not_abandoned = await queue.requeue("a")
        return requeued, discarded, not_abandoned, queue, repo

    requeued, discarded, not_abandoned, queue, repo = asyncio.run(scenario())

    assert requeued is True
    assert not_abandoned is False
    assert [(a.prestacion_id, a.retry_count) for a in queue.pending()] == [("a", 0)]
    assert discarded is True
    assert queue.get("b") is None
    assert repo.items["b"].estado is PrestacionStatus.PENDING


def test_reintento_manual_de_abandonada() -> None:
    async def scenario():
        repo = _queued_repo("p-1")
        queue = OfflineSyncQueue(InMemoryQueueStore(), repo, max_retries=1)
        await queue.enqueue(make_attempt("p-1"))
        await queue.drain(ScriptedBackendWriter(**{"p-1": [ConnectivityError("x")]}))
        report = await queue.retry("p-1", ScriptedBackendWriter())
        missing = await queue.retry("otra", ScriptedBackendWriter())
        return report, missing, repo

    report, missing, repo = asyncio.run(scenario())

    assert report.succeeded == ["p-1"]
    assert missing.total == 0
    assert repo.items["p-1"].estado is PrestacionStatus.COMPLETED


def test_reintento_manual_y_drain_no_corren_a_la_vez() -> None:
    async def scenario():
        repo = _queued_repo("p-1")
        queue = OfflineSyncQueue(InMemoryQueueStore(), repo)
        await queue.enqueue(make_attempt("p-1"))
        writer = BlockingBackendWriter()
        drain_task = asyncio.create_task(queue.drain(writer))
        await writer.started.wait()
        retry_task = asyncio.create_task(queue.retry("p-1", writer))
        await asyncio.sleep(0.01)
        # El reintento manual espera el lock de la prestación.
        assert writer.calls == 1
        assert queue.locks.locked("p-1")
        writer.release.set()
        return await drain_task, await retry_task, writer

    drain_report, retry_report, writer = asyncio.run(scenario())

    assert drain_report.succeeded == ["p-1"]
    assert retry_report.total == 0
    assert writer.calls == 1


def test_max_retries_invalido() -> None:
    with pytest.raises(ValueError):
        OfflineSyncQueue(InMemoryQueueStore(), InMemoryPrestacionRepository(), max_retries=0)


def test_descartar_un_intento_todavia_en_cola() -> None:
    async def scenario():
        repo = _queued_repo("p-1")
        store = InMemoryQueueStore()
        queue = OfflineSyncQueue(store, repo)
        await queue.enqueue(make_attempt("p-1"))
        discarded = await queue.discard("p-1")
        return discarded, store, repo

    discarded, store, repo = asyncio.run(scenario())

    assert discarded is True
    assert store.data == {}
    assert repo.items["p-1"].estado is PrestacionStatus.PENDING


def test_dos_procesos_sobre_la_misma_cola_no_reenvian_el_cierre(tmp_path) -> None:
    # Dos colas con su propio estado en memoria, como dos corridas de la CLI.
    queue_file = tmp_path / "cola_offline.json"
    lock_dir = tmp_path / "locks"

    async def scenario():
        repo = _queued_repo("p-1")
        draining = OfflineSyncQueue(JsonQueueStore(queue_file), repo, locks=KeyedLocks(lock_dir))
        retrying = OfflineSyncQueue(
            JsonQueueStore(queue_file), repo, locks=KeyedLocks(lock_dir, poll_interval=0.01)
        )
        await draining.enqueue(make_attempt("p-1"))
        await retrying.restore()
        assert retrying.get("p-1") is not None

        writer = BlockingBackendWriter()
        drain_task = asyncio.create_task(draining.drain(writer))
        await writer.started.wait()
        retry_task = asyncio.create_task(retrying.retry("p-1", writer))
        await asyncio.sleep(0.05)
        assert not retry_task.done()
        writer.release.set()
        return await drain_task, await retry_task, writer, retrying

    drain_report, retry_report, writer, retrying = asyncio.run(scenario())

    assert drain_report.succeeded == ["p-1"]
    assert retry_report.total == 0
    assert writer.calls == 1
    assert retrying.get("p-1") is None
    assert asyncio.run(JsonQueueStore(queue_file).load_all()) == {}


def test_lo_que_otro_proceso_actualizo_se_lee_del_store() -> None:
    async def scenario():
        store = InMemoryQueueStore()
        repo = _queued_repo("p-1")
        first = OfflineSyncQueue(store, repo)
        second = OfflineSyncQueue(store, repo)
        await first.enqueue(make_attempt("p-1", notas="viejo"))
        await second.restore()
        await first.enqueue(make_attempt("p-1", notas="nuevo"))
        writer = ScriptedBackendWriter()
        await second.drain(writer)
        return writer

    writer = asyncio.run(scenario())

    assert [call[2] for call in writer.calls] == ["nuevo"]
