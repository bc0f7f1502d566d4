"""
IngestionPipeline - Concurrent dual-write ingestion that honors the routing state.

A fixed pool of workers drains one shared bounded queue. For each document a
worker reads the *current* routing state and writes:

    1. to the primary index (failure is fatal)
    2. to the secondary index, if one is armed (failure is fatal, but the
       primary write is not rolled back)

Both writes share one per-document deadline. A write that runs past it
fails with WriteFailed(cause=DeadlineExceeded).

Consistency Guarantees:
    - Primary before secondary for every document; no ordering across documents
    - At-least-once: a failed secondary write leaves the primary write in place
    - Re-sending a document is safe, ids are idempotency keys
    - The primary and secondary slots are read separately, so a document
      processed during a routing change may see a mix of old and new values

Failure Semantics:
    The workers run in one asyncio.TaskGroup. The first WriteFailed cancels
    every sibling and is re-raised from run(); acknowledged writes stay
    written. The core never retries; restarting ingestion is the caller's call.

Usage:
    >>> pipeline = IngestionPipeline(store, routing, PipelineConfig(workers=4))
    >>> queue = pipeline.new_queue()
    >>> producer = SequentialProducer(queue)
    >>> async with asyncio.TaskGroup() as tg:
    ...     tg.create_task(producer.run(stop))
    ...     report = tg.create_task(pipeline.run(queue))
    >>> report.result().ingested
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from livereindex.config import PipelineConfig
from livereindex.exceptions import (
    DeadlineExceeded,
    QueueClosedError,
    ReindexError,
    WriteFailed,
)
from livereindex.models import Document
from livereindex.observability import (
    ATTR_DEADLINE,
    ATTR_DOCUMENT_ID,
    ATTR_DUAL_WRITE,
    ATTR_ERROR_TYPE,
    ATTR_PRIMARY_INDEX,
    ATTR_WORKERS,
    IngestionMetrics,
    Tracer,
    create_tracer,
)
from livereindex.routing import RoutingState
from livereindex.storage.interface import SearchStore

logger = logging.getLogger(__name__)


class DocumentQueue:
    """
    Bounded queue of documents with an explicit close.

    put() blocks while the queue is full (back-pressure on the producer).
    get() blocks until a document is available, and returns None once the
    queue is closed and drained. Putting onto a closed queue raises
    QueueClosedError, which also releases producers blocked on a full queue
    when the pool shuts down.

    Args:
        capacity: Maximum number of buffered documents.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._items: deque[Document] = deque()
        self._closed = False
        self._cond = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    async def put(self, document: Document) -> None:
        async with self._cond:
            await self._cond.wait_for(
                lambda: self._closed or len(self._items) < self.capacity
            )
            if self._closed:
                raise QueueClosedError()
            self._items.append(document)
            self._cond.notify_all()

    async def get(self) -> Document | None:
        async with self._cond:
            await self._cond.wait_for(lambda: bool(self._items) or self._closed)
            if not self._items:
                return None
            document = self._items.popleft()
            self._cond.notify_all()
            return document

    async def close(self) -> None:
        """Stop accepting documents. Already queued documents are still delivered."""
        async with self._cond:
            self._closed = True
            self._cond.notify_all()


@dataclass(frozen=True)
class IngestReport:
    """
    Outcome of one pipeline run.

    Attributes:
        ingested: Documents fully written to every routed index. A document
            whose primary write landed but whose secondary write failed counts
            only in ``failed``.
        dual_written: Documents also acknowledged by a secondary index.
        failed: Documents whose writes failed.
        duration_seconds: Wall-clock time of the run.
    """

    ingested: int
    dual_written: int
    failed: int
    duration_seconds: float

    @property
    def documents_per_second(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.ingested / self.duration_seconds


@dataclass
class _RunTally:
    """Counters owned by a single run(); concurrent runs each get their own."""

    ingested: int = 0
    dual_written: int = 0
    failed: int = 0
    first_error: WriteFailed | None = None


class IngestionPipeline:
    """
    Worker pool that writes documents to the indices named by the routing state.

    Args:
        store: Shared search store.
        routing: Shared routing state, read once per slot per document.
        config: Pool size and per-document deadline.
        metrics: Optional metrics container.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to emit spans when no tracer is given.
    """

    def __init__(
        self,
        store: SearchStore,
        routing: RoutingState,
        config: PipelineConfig | None = None,
        *,
        metrics: IngestionMetrics | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._routing = routing
        self._config = config or PipelineConfig()
        self._metrics = metrics or IngestionMetrics(enable_metrics=False)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def metrics(self) -> IngestionMetrics:
        return self._metrics

    def new_queue(self) -> DocumentQueue:
        """Create a queue sized for this pool (two slots per worker)."""
        return DocumentQueue(self._config.queue_capacity)

    async def ingest_one(self, document: Document) -> tuple[str, ...]:
        """
        Write one document to the primary and, if armed, the secondary index.

        Each slot is read at the moment it is needed: the secondary is read
        only after the primary write has been acknowledged.

        Args:
            document: The document to write.

        Returns:
            The indices that acknowledged the write, primary first.

        Raises:
            WriteFailed: If either write fails or the deadline passes. The
                error names the index being written at the time.
        """
        deadline = self._config.write_deadline
        started = time.perf_counter()
        current = self._routing.primary_index
        written: list[str] = []

        with self._tracer.span(
            "ingestion_pipeline.ingest_one",
            {
                ATTR_DOCUMENT_ID: document.id,
                ATTR_PRIMARY_INDEX: current,
                ATTR_DEADLINE: deadline,
            },
        ) as span:
            try:
                async with asyncio.timeout(deadline):
                    await self._store.put(current, document.id, document.payload)
                    written.append(current)

                    secondary = self._routing.secondary_index
                    if secondary is not None:
                        current = secondary
                        await self._store.put(current, document.id, document.payload)
                        written.append(current)
            except TimeoutError as e:
                error = WriteFailed(current, document.id, DeadlineExceeded(deadline))
                self._record_failure(error, span)
                raise error from e
            except WriteFailed as e:
                self._record_failure(e, span)
                raise

            dual_write = len(written) > 1
            if span is not None:
                span.set_attribute(ATTR_DUAL_WRITE, dual_write)

        self._metrics.record_ingested(
            dual_write=dual_write,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return tuple(written)

    def _record_failure(self, error: WriteFailed, span: Any) -> None:
        self._metrics.record_write_failure(error.index, error.error_code)
        if span is not None:
            span.set_attribute(ATTR_ERROR_TYPE, error.error_code)

    async def run(self, queue: DocumentQueue) -> IngestReport:
        """
        Drain a queue with the worker pool until it is closed and empty.

        Args:
            queue: The queue to consume. The producer closes it when done.

        Returns:
            An IngestReport for this run.

        Raises:
            WriteFailed: The first write failure; all other workers are cancelled.
        """
        tally = _RunTally()
        workers = self._config.workers
        started = time.perf_counter()

        logger.info(
            "Starting ingestion with %d workers",
            workers,
            extra={"workers": workers, "queue_capacity": queue.capacity},
        )

        with self._tracer.span("ingestion_pipeline.run", {ATTR_WORKERS: workers}):
            try:
                async with asyncio.TaskGroup() as tg:
                    for worker_id in range(workers):
                        tg.create_task(
                            self._worker(worker_id, queue, tally),
                            name=f"ingest-worker-{worker_id}",
                        )
            except BaseExceptionGroup as eg:
                # Release producers blocked on a full queue.
                await queue.close()
                error = tally.first_error or eg.exceptions[0]
                logger.log(
                    error.severity.log_level if isinstance(error, ReindexError) else logging.ERROR,
                    "Ingestion aborted after %d documents: %s",
                    tally.ingested,
                    error,
                    extra={"ingested": tally.ingested, "failed": tally.failed},
                )
                raise error

        report = IngestReport(
            ingested=tally.ingested,
            dual_written=tally.dual_written,
            failed=tally.failed,
            duration_seconds=time.perf_counter() - started,
        )
        logger.info(
            "Ingestion finished: %d documents (%d dual-written)",
            report.ingested,
            report.dual_written,
            extra={
                "ingested": report.ingested,
                "dual_written": report.dual_written,
                "duration_seconds": report.duration_seconds,
            },
        )
        return report

    async def _worker(self, worker_id: int, queue: DocumentQueue, tally: _RunTally) -> None:
        while True:
            document = await queue.get()
            if document is None:
                logger.debug("Worker %d drained queue", worker_id)
                return

            try:
                written = await self.ingest_one(document)
            except WriteFailed as e:
                tally.failed += 1
                if tally.first_error is None:
                    tally.first_error = e
                logger.log(
                    e.severity.log_level,
                    "Worker %d failed to write document %d to %s: %s",
                    worker_id,
                    document.id,
                    e.index,
                    e.cause,
                    extra={
                        "worker_id": worker_id,
                        "document_id": document.id,
                        "index": e.index,
                        "error_code": e.error_code,
                    },
                )
                raise

            tally.ingested += 1
            if len(written) > 1:
                tally.dual_written += 1

    async def ingest(self, documents: Iterable[Document]) -> IngestReport:
        """
        Ingest a finite batch of documents and wait for the pool to finish.

        Args:
            documents: Documents to write.

        Returns:
            An IngestReport for the batch.

        Raises:
            WriteFailed: The first write failure.
        """
        queue = self.new_queue()

        async def feed() -> None:
            try:
                for document in documents:
                    await queue.put(document)
            except QueueClosedError:
                # The pool shut down early; its error is reported by run().
                return
            finally:
                await queue.close()

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(feed())
                run = tg.create_task(self.run(queue))
        except BaseExceptionGroup as eg:
            raise eg.exceptions[0]

        return run.result()


__all__ = [
    "DocumentQueue",
    "IngestReport",
    "IngestionPipeline",
]
