"""
Live Cutover Example

This example migrates a continuously written index to a new index without
stopping writes:
- A producer sends one document every 100ms through the worker pool
- A progress observer logs both indices while the migration runs
- The cutover runbook arms dual-writes, reindexes, waits for convergence,
  switches reads and writes, and retires the old index

By default everything runs against the in-memory store. Set
LIVEREINDEX_ELASTICSEARCH_URL (e.g. http://localhost:9200) to run the same
cutover against a live Elasticsearch node.

Run with: python -m examples.live_cutover
"""

import asyncio
import logging
import os

from livereindex import (
    CutoverRunbook,
    ElasticsearchStore,
    InMemorySearchStore,
    IngestionMetrics,
    IngestionPipeline,
    MigrationOrchestrator,
    ProgressObserver,
    ReindexSettings,
    RoutingState,
    RunbookConfig,
    SearchStore,
    SequentialProducer,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SOURCE = "index-a"
TARGET = "index-b"


def build_store(settings: ReindexSettings) -> SearchStore:
    if "LIVEREINDEX_ELASTICSEARCH_URL" in os.environ:
        return ElasticsearchStore.from_settings(settings)
    return InMemorySearchStore(write_latency=0.005, copy_delay=0.5, enable_tracing=False)


async def main():
    """Run a cutover from index-a to index-b while documents keep arriving."""
    print("=" * 60)
    print("Live Cutover Example")
    print("=" * 60)

    settings = ReindexSettings(enable_tracing=False)
    store = build_store(settings)

    # =========================================================================
    # Step 1: Start in SINGLE(index-a) and clear leftovers from earlier runs
    # =========================================================================
    await store.delete_index(SOURCE)
    await store.delete_index(TARGET)

    routing = RoutingState.single(SOURCE)
    metrics = IngestionMetrics(pipeline_name="example", enable_metrics=False)
    pipeline = IngestionPipeline(
        store,
        routing,
        settings.pipeline_config(),
        metrics=metrics,
        enable_tracing=False,
    )
    orchestrator = MigrationOrchestrator(store, routing, enable_tracing=False)
    observer = ProgressObserver(store, enable_tracing=False)
    runbook = CutoverRunbook(
        orchestrator,
        observer,
        RunbookConfig(settle_seconds=1.0, convergence_timeout=60.0, poll_interval=0.5),
    )

    # =========================================================================
    # Step 2: Keep writing while the cutover runs
    # =========================================================================
    queue = pipeline.new_queue()
    producer = SequentialProducer(queue, interval=0.1)
    stop_producer = asyncio.Event()
    stop_observer = asyncio.Event()

    print(f"\n1. Ingesting into {SOURCE!r}...")
    try:
        async with asyncio.TaskGroup() as tg:
            produced = tg.create_task(producer.run(stop_producer))
            ingested = tg.create_task(pipeline.run(queue))
            tg.create_task(observer.run(stop_observer, [SOURCE, TARGET], interval=1.0))

            await asyncio.sleep(2.0)

            print(f"\n2. Migrating {SOURCE!r} -> {TARGET!r} under load...")
            result = await runbook.run(SOURCE, TARGET)
            print(f"   Steps: {', '.join(result.steps)}")
            print(f"   Took {result.duration_seconds:.1f}s, phase now {orchestrator.phase.value}")

            await asyncio.sleep(1.0)
            stop_producer.set()
            await ingested
            stop_observer.set()

        # =====================================================================
        # Step 3: Check that nothing was lost
        # =====================================================================
        print("\n3. Verifying the new index...")
        await store.refresh(TARGET)
        sample = await observer.sample_latest(TARGET)
        snapshot = metrics.snapshot()
        print(f"   Documents sent:        {produced.result()}")
        print(f"   Documents ingested:    {snapshot.documents_ingested}")
        print(f"   Dual-written:          {snapshot.documents_dual_written}")
        print(f"   {TARGET} total:         {sample.total} (latest id {sample.latest_id})")
        print(f"   Routing:               {routing!r}")

        print("\n4. Rollback would be:")
        for step in CutoverRunbook.rollback_plan(SOURCE, TARGET):
            print(f"   {step}")
    finally:
        await store.close()

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
