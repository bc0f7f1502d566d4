"""
OpenTelemetry metrics for the ingestion pipeline.

Tracks documents ingested, dual writes, write failures and write latency so
operators can tell whether writes are being lost during a cutover.

Example:
    >>> from livereindex.observability.metrics import IngestionMetrics
    >>>
    >>> metrics = IngestionMetrics(pipeline_name="orders")
    >>> metrics.record_ingested(dual_write=True, duration_ms=12.5)
    >>> metrics.record_write_failure("b", "WRITE_DEADLINE_EXCEEDED")
    >>> metrics.snapshot().documents_ingested
    1

Metrics Exposed:
    - livereindex.documents.ingested (Counter): Documents written to the primary
    - livereindex.documents.dual_written (Counter): Documents also written to the secondary
    - livereindex.writes.failed (Counter): Failed writes, labeled by index and error code
    - livereindex.write.duration (Histogram): Time spent in ingest_one

All metrics carry the 'pipeline' attribute for filtering.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import metrics

_meter: Any = None


def _get_meter() -> Any:
    """Get or create the meter for the livereindex namespace."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("livereindex", version="1.0.0")
    return _meter


def reset_meter() -> None:
    """
    Reset the global meter instance.

    Useful for testing to ensure fresh meter state between tests.
    """
    global _meter
    _meter = None


@dataclass(frozen=True)
class IngestionMetricSnapshot:
    """
    Snapshot of locally tracked metric values.

    Attributes:
        documents_ingested: Documents fully written to every routed index
        documents_dual_written: Documents also acknowledged by the secondary
        write_failures: Failed writes keyed by index name
        total_write_ms: Cumulative time spent in successful ingest_one calls
    """

    documents_ingested: int = 0
    documents_dual_written: int = 0
    write_failures: dict[str, int] = field(default_factory=dict)
    total_write_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "documents_ingested": self.documents_ingested,
            "documents_dual_written": self.documents_dual_written,
            "write_failures": dict(self.write_failures),
            "total_write_ms": self.total_write_ms,
        }


@dataclass
class IngestionMetrics:
    """
    Container for ingestion metric instruments.

    Counters are mirrored locally so tests and status reports can read them
    without an OpenTelemetry SDK. With enable_metrics=False only the local
    counts are kept.

    Attributes:
        pipeline_name: Label attached to every recorded metric
        enable_metrics: Whether to emit to OpenTelemetry (default True)
    """

    pipeline_name: str = "default"
    enable_metrics: bool = True

    _ingested_counter: Any = field(default=None, init=False, repr=False)
    _dual_written_counter: Any = field(default=None, init=False, repr=False)
    _failed_counter: Any = field(default=None, init=False, repr=False)
    _duration_histogram: Any = field(default=None, init=False, repr=False)

    _ingested: int = field(default=0, init=False, repr=False)
    _dual_written: int = field(default=0, init=False, repr=False)
    _failures: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _total_write_ms: float = field(default=0.0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.enable_metrics:
            self._setup_metrics()

    def _setup_metrics(self) -> None:
        meter = _get_meter()

        self._ingested_counter = meter.create_counter(
            name="livereindex.documents.ingested",
            unit="documents",
            description="Documents fully written to every routed index",
        )
        self._dual_written_counter = meter.create_counter(
            name="livereindex.documents.dual_written",
            unit="documents",
            description="Documents also acknowledged by the secondary index",
        )
        self._failed_counter = meter.create_counter(
            name="livereindex.writes.failed",
            unit="writes",
            description="Writes that failed or exceeded their deadline",
        )
        self._duration_histogram = meter.create_histogram(
            name="livereindex.write.duration",
            unit="ms",
            description="Time spent writing one document to all routed indices",
        )

    def _attributes(self, **extra: str) -> dict[str, str]:
        return {"pipeline": self.pipeline_name, **extra}

    def record_ingested(self, *, dual_write: bool, duration_ms: float) -> None:
        """
        Record a successfully ingested document.

        Args:
            dual_write: Whether the document was also written to the secondary
            duration_ms: Time spent in ingest_one
        """
        with self._lock:
            self._ingested += 1
            if dual_write:
                self._dual_written += 1
            self._total_write_ms += duration_ms

        if self._ingested_counter is not None:
            self._ingested_counter.add(1, self._attributes())
            if dual_write:
                self._dual_written_counter.add(1, self._attributes())
            self._duration_histogram.record(duration_ms, self._attributes())

    def record_write_failure(self, index: str, error_code: str) -> None:
        """
        Record a failed write.

        Args:
            index: Index the failed write targeted
            error_code: Error code of the raised WriteFailed
        """
        with self._lock:
            self._failures[index] = self._failures.get(index, 0) + 1

        if self._failed_counter is not None:
            self._failed_counter.add(1, self._attributes(index=index, error_code=error_code))

    def snapshot(self) -> IngestionMetricSnapshot:
        """Return the locally tracked values."""
        with self._lock:
            return IngestionMetricSnapshot(
                documents_ingested=self._ingested,
                documents_dual_written=self._dual_written,
                write_failures=dict(self._failures),
                total_write_ms=self._total_write_ms,
            )


__all__ = [
    "IngestionMetrics",
    "IngestionMetricSnapshot",
    "reset_meter",
]
