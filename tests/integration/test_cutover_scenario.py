"""
End-to-end cutover scenarios on the in-memory store.

These tests wire the pipeline, orchestrator, observer and runbook together
the way a deployment does: one store and one routing state shared by every
component, with ingestion running while routing changes.
"""

from __future__ import annotations

import asyncio

import pytest

from livereindex.config import PipelineConfig, RunbookConfig
from livereindex.models import MigrationPhase, SortOrder
from livereindex.observer import ProgressObserver
from livereindex.orchestrator import MigrationOrchestrator
from livereindex.pipeline import IngestionPipeline
from livereindex.producer import SequentialProducer
from livereindex.routing import RoutingState
from livereindex.runbook import CutoverRunbook
from livereindex.storage import InMemorySearchStore
from tests.fixtures import INDEX_A, INDEX_B, make_documents

pytestmark = pytest.mark.e2e


async def total(store: InMemorySearchStore, index: str) -> int:
    return (await store.search(index, "id", SortOrder.DESC, 1)).total


async def latest_id(store: InMemorySearchStore, index: str) -> int | None:
    return (await store.search(index, "id", SortOrder.DESC, 1)).latest_id


# =============================================================================
# Step-by-step migration
# =============================================================================


class TestManualCutover:
    """Drives the orchestrator one operation at a time."""

    @pytest.mark.asyncio
    async def test_migration_scenario(
        self,
        store: InMemorySearchStore,
        routing: RoutingState,
        pipeline: IngestionPipeline,
        orchestrator: MigrationOrchestrator,
        observer: ProgressObserver,
    ) -> None:
        assert orchestrator.phase is MigrationPhase.SINGLE

        await pipeline.ingest(make_documents(0, 50))
        assert await total(store, INDEX_A) == 50

        orchestrator.set_secondary_index(INDEX_B)
        report = await pipeline.ingest(make_documents(50, 60))
        assert report.dual_written == 10
        assert await total(store, INDEX_B) == 10

        task = await orchestrator.reindex(INDEX_A, INDEX_B)
        await orchestrator.wait_for_copy(task, timeout=1, interval=0.01)
        convergence = await observer.wait_for_convergence(
            INDEX_A, INDEX_B, timeout=1, interval=0.01
        )
        assert convergence.converged
        assert await total(store, INDEX_B) == 60
        assert await latest_id(store, INDEX_B) == 59

        orchestrator.set_read_index(INDEX_B)
        orchestrator.set_primary_index(INDEX_B)
        orchestrator.set_secondary_index(None)
        assert orchestrator.phase is MigrationPhase.SINGLE_STALE

        report = await pipeline.ingest(make_documents(60, 70))
        assert report.dual_written == 0
        assert await total(store, INDEX_B) == 70
        assert await total(store, INDEX_A) == 60

        await orchestrator.retire_index(INDEX_A)
        await orchestrator.retire_index(INDEX_A)
        assert not store.exists(INDEX_A)
        assert orchestrator.phase is MigrationPhase.SINGLE
        assert routing.read_index == INDEX_B

    @pytest.mark.asyncio
    async def test_documents_exist_where_routing_sent_them(
        self,
        store: InMemorySearchStore,
        pipeline: IngestionPipeline,
        orchestrator: MigrationOrchestrator,
    ) -> None:
        await pipeline.ingest(make_documents(0, 5))
        orchestrator.set_secondary_index(INDEX_B)
        await pipeline.ingest(make_documents(5, 10))

        assert store.ids(INDEX_A) == set(range(10))
        assert store.ids(INDEX_B) == set(range(5, 10))

    @pytest.mark.asyncio
    async def test_reingest_does_not_change_totals(
        self,
        store: InMemorySearchStore,
        pipeline: IngestionPipeline,
    ) -> None:
        await pipeline.ingest(make_documents(0, 20))
        await pipeline.ingest(make_documents(0, 20))

        assert await total(store, INDEX_A) == 20


# =============================================================================
# Live ingestion
# =============================================================================


class TestLiveIngestion:
    """Routing changes while a producer and the worker pool keep running."""

    @pytest.mark.asyncio
    async def test_read_switches_never_stall_ingestion(
        self,
        store: InMemorySearchStore,
        routing: RoutingState,
        pipeline: IngestionPipeline,
    ) -> None:
        queue = pipeline.new_queue()
        producer = SequentialProducer(queue, interval=0, limit=200)

        async def flip_reads() -> None:
            for n in range(50):
                routing.set_read_index(INDEX_B if n % 2 else INDEX_A)
                await asyncio.sleep(0)

        async with asyncio.TaskGroup() as tg:
            tg.create_task(producer.run(asyncio.Event()))
            report = tg.create_task(pipeline.run(queue))
            tg.create_task(flip_reads())

        assert report.result().ingested == 200
        assert store.ids(INDEX_A) == set(range(200))
        assert not store.exists(INDEX_B)

    @pytest.mark.asyncio
    async def test_runbook_during_live_ingestion(
        self,
        store: InMemorySearchStore,
        routing: RoutingState,
        orchestrator: MigrationOrchestrator,
        observer: ProgressObserver,
    ) -> None:
        pipeline = IngestionPipeline(
            store,
            routing,
            PipelineConfig(workers=4, write_deadline=1.0),
            enable_tracing=False,
        )
        runbook = CutoverRunbook(
            orchestrator,
            observer,
            RunbookConfig(settle_seconds=0.02, convergence_timeout=2.0, poll_interval=0.01),
        )
        await pipeline.ingest(make_documents(0, 50))

        queue = pipeline.new_queue()
        producer = SequentialProducer(queue, start_id=50, interval=0.005)
        stop = asyncio.Event()

        async with asyncio.TaskGroup() as tg:
            produced = tg.create_task(producer.run(stop))
            report = tg.create_task(pipeline.run(queue))

            await asyncio.sleep(0.05)
            result = await runbook.run(INDEX_A, INDEX_B)
            await asyncio.sleep(0.05)
            stop.set()

        sent = produced.result()
        assert report.result().ingested == sent
        assert result.retired
        assert not store.exists(INDEX_A)
        # No acknowledged write was lost with the retired index.
        assert store.ids(INDEX_B) == set(range(50 + sent))
        assert orchestrator.phase is MigrationPhase.SINGLE
