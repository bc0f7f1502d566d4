"""
SequentialProducer - Feeds documents with increasing ids into the pipeline.

Produces Document(id=n, payload="document n") for n = start_id, start_id + 1,
... until its stop event is set or an optional limit is reached, then closes
the queue so the worker pool drains and exits. Sequential ids make the
"most recent id" reported by the progress observer meaningful.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from livereindex.exceptions import QueueClosedError
from livereindex.models import Document
from livereindex.pipeline import DocumentQueue

logger = logging.getLogger(__name__)


def default_payload(document_id: int) -> str:
    return f"document {document_id}"


class SequentialProducer:
    """
    Cancellable producer of sequentially numbered documents.

    Example:
        >>> producer = SequentialProducer(queue, interval=0.5)
        >>> stop = asyncio.Event()
        >>> task = asyncio.create_task(producer.run(stop))
        >>> ...
        >>> stop.set()
        >>> sent = await task

    Args:
        queue: Queue consumed by the ingestion pipeline.
        start_id: First id to produce.
        interval: Seconds to wait between documents (0 for no pause).
        limit: Maximum number of documents to produce, or None for unbounded.
        payload_factory: Builds the payload for an id.
        close_queue: Whether to close the queue when production ends.
    """

    def __init__(
        self,
        queue: DocumentQueue,
        *,
        start_id: int = 0,
        interval: float = 0.5,
        limit: int | None = None,
        payload_factory: Callable[[int], Any] = default_payload,
        close_queue: bool = True,
    ) -> None:
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got {interval}")
        self._queue = queue
        self._next_id = start_id
        self._interval = interval
        self._limit = limit
        self._payload_factory = payload_factory
        self._close_queue = close_queue
        self._sent = 0

    @property
    def next_id(self) -> int:
        """Id the next produced document will carry."""
        return self._next_id

    @property
    def sent(self) -> int:
        return self._sent

    async def run(self, stop: asyncio.Event) -> int:
        """
        Produce documents until stopped.

        Args:
            stop: Cooperative stop signal.

        Returns:
            Number of documents handed to the queue.
        """
        try:
            while not stop.is_set():
                if self._limit is not None and self._sent >= self._limit:
                    break

                document = Document(
                    id=self._next_id,
                    payload=self._payload_factory(self._next_id),
                )
                try:
                    await self._queue.put(document)
                except QueueClosedError:
                    logger.warning(
                        "Queue closed under producer at id %d",
                        self._next_id,
                        extra={"next_id": self._next_id, "sent": self._sent},
                    )
                    break

                self._next_id += 1
                self._sent += 1

                if self._interval:
                    with contextlib.suppress(TimeoutError):
                        await asyncio.wait_for(stop.wait(), timeout=self._interval)
        finally:
            if self._close_queue:
                await self._queue.close()

        logger.info(
            "Producer stopped after %d documents",
            self._sent,
            extra={"sent": self._sent, "next_id": self._next_id},
        )
        return self._sent


__all__ = ["SequentialProducer", "default_payload"]
