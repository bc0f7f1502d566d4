"""
ProgressObserver - Best-effort convergence reporting for two indices.

The observer samples each index's most recent document (by id, descending)
and its exact document count. It is used for operational visibility, test
assertions and the convergence gate before the read switch, but it is never
required for correctness of ingestion: query failures are logged and
recorded in the sample, never raised.

Usage:
    >>> observer = ProgressObserver(store)
    >>> sample = await observer.sample_latest("orders-v1")
    >>> sample.total, sample.latest_id
    (60, 59)
    >>>
    >>> # Gate the read switch on convergence
    >>> await observer.wait_for_convergence("orders-v1", "orders-v2", timeout=60)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Sequence

from livereindex.exceptions import ConvergenceTimeout, QueryFailed
from livereindex.models import ID_FIELD, ConvergenceSample, IndexSample, SortOrder
from livereindex.observability import (
    ATTR_DEST_INDEX,
    ATTR_INDEX,
    ATTR_SOURCE_INDEX,
    Tracer,
    create_tracer,
)
from livereindex.storage.interface import SearchStore

logger = logging.getLogger(__name__)


class ProgressObserver:
    """
    Samples indices independently of ingestion.

    Args:
        store: Shared search store.
        sort_field: Field whose highest value marks the most recent document.
        history_size: Number of samples kept in history.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to emit spans when no tracer is given.
    """

    def __init__(
        self,
        store: SearchStore,
        *,
        sort_field: str = ID_FIELD,
        history_size: int = 100,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._sort_field = sort_field
        self._history: deque[IndexSample] = deque(maxlen=history_size)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def history(self) -> list[IndexSample]:
        """Recorded samples, oldest first."""
        return list(self._history)

    def latest(self, index: str) -> IndexSample | None:
        """Most recent recorded sample of an index, if any."""
        for sample in reversed(self._history):
            if sample.index == index:
                return sample
        return None

    async def sample_latest(self, index: str) -> IndexSample:
        """
        Sample the most recent document and the document count of an index.

        Never raises QueryFailed: the failure is logged and returned in
        the sample's error field.
        """
        with self._tracer.span("progress_observer.sample_latest", {ATTR_INDEX: index}):
            try:
                result = await self._store.search(index, self._sort_field, SortOrder.DESC, 1)
            except QueryFailed as e:
                logger.log(
                    e.severity.log_level,
                    "Error sampling index %s: %s",
                    index,
                    e.cause,
                    extra={"index": index, "error_code": e.error_code},
                )
                sample = IndexSample(index=index, error=str(e.cause or e))
            else:
                sample = IndexSample(index=index, total=result.total, latest_id=result.latest_id)

        self._history.append(sample)
        return sample

    async def compare(self, source: str, target: str) -> ConvergenceSample:
        """Sample two indices concurrently and compare them."""
        with self._tracer.span(
            "progress_observer.compare",
            {ATTR_SOURCE_INDEX: source, ATTR_DEST_INDEX: target},
        ):
            source_sample, target_sample = await asyncio.gather(
                self.sample_latest(source),
                self.sample_latest(target),
            )
        return ConvergenceSample(source=source_sample, target=target_sample)

    async def _refresh(self, *indices: str) -> None:
        for index in indices:
            try:
                await self._store.refresh(index)
            except QueryFailed as e:
                logger.warning("Error refreshing index %s: %s", index, e.cause)

    async def wait_for_convergence(
        self,
        source: str,
        target: str,
        timeout: float,
        interval: float = 1.0,
        *,
        refresh: bool = True,
    ) -> ConvergenceSample:
        """
        Poll until two indices hold the same count and the same most recent id.

        Call this before switching reads to the target: an accepted bulk copy
        may still be running.

        Args:
            source: Index being caught up from.
            target: Index being caught up.
            timeout: Maximum seconds to wait.
            interval: Seconds between polls.
            refresh: Refresh both indices before each poll.

        Returns:
            The first converged sample.

        Raises:
            ConvergenceTimeout: If the indices do not converge in time.
        """
        last: ConvergenceSample | None = None
        try:
            async with asyncio.timeout(timeout):
                while True:
                    if refresh:
                        await self._refresh(source, target)
                    last = await self.compare(source, target)
                    if last.converged:
                        logger.info(
                            "Indices %s and %s converged at %d documents",
                            source,
                            target,
                            last.target.total,
                            extra=last.to_dict(),
                        )
                        return last
                    logger.debug("Waiting for convergence", extra=last.to_dict())
                    await asyncio.sleep(interval)
        except TimeoutError as e:
            raise ConvergenceTimeout(source, target, timeout, last) from e

    async def run(
        self,
        stop: asyncio.Event,
        indices: Sequence[str],
        interval: float = 1.0,
    ) -> None:
        """
        Sample indices on a fixed interval until stopped.

        With exactly two indices, each round also logs their convergence.

        Args:
            stop: Cooperative stop signal.
            indices: Indices to sample each round.
            interval: Seconds between rounds.
        """
        logger.info("Progress observer started", extra={"indices": list(indices)})
        while not stop.is_set():
            samples = await asyncio.gather(*(self.sample_latest(ix) for ix in indices))
            if len(samples) == 2:
                convergence = ConvergenceSample(source=samples[0], target=samples[1])
                logger.info(
                    "%s[total=%d latest=%s] %s[total=%d latest=%s]",
                    samples[0].index,
                    samples[0].total,
                    samples[0].latest_id,
                    samples[1].index,
                    samples[1].total,
                    samples[1].latest_id,
                    extra=convergence.to_dict(),
                )
            else:
                for sample in samples:
                    logger.info(
                        "%s[total=%d latest=%s]",
                        sample.index,
                        sample.total,
                        sample.latest_id,
                    )

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=interval)

        logger.info("Progress observer stopped")


__all__ = ["ProgressObserver"]
