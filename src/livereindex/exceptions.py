"""
Errors raised by livereindex, and how callers should react to them.

    ReindexError
    +-- WriteFailed          a document did not reach an index (or timed out)
    +-- QueryFailed          a search failed; progress is unknown, writes are fine
    +-- CopyFailed           the engine rejected or failed a bulk reindex
    +-- DeleteFailed         an index could not be retired
    +-- ConvergenceTimeout   source and target never agreed in time
    +-- IndexStillReferenced retirement refused while routing still uses the index
    +-- QueueClosedError     a producer offered a document after shutdown

Every ReindexError carries an ErrorClassification saying how loud it is
(ErrorSeverity) and whether trying again can help (ErrorRecoverability).
Nothing in the core retries; callers that want to opt in use ErrorHandler.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorSeverity(Enum):
    """How loudly an error should be reported. Values match logging level names."""

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def should_alert(self) -> bool:
        return self in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR)

    @property
    def log_level(self) -> int:
        return logging.getLevelName(self.name)


class ErrorRecoverability(Enum):
    """
    Whether an error can go away.

    TRANSIENT errors may clear on their own and are the only ones
    ErrorHandler retries. RECOVERABLE errors need an operator to change
    something first. FATAL errors will recur no matter what.
    """

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def should_retry(self) -> bool:
        return self is ErrorRecoverability.TRANSIENT


@dataclass(frozen=True)
class RetryConfig:
    """
    Exponential backoff for caller-side retries.

    The n-th retry (counting from 0) waits
    ``base_delay_ms * exponential_base ** n``, stretched by up to
    ``jitter_factor`` and never longer than ``max_delay_ms``.
    ``max_attempts`` counts the first try.
    """

    max_attempts: int = 3
    base_delay_ms: float = 100.0
    max_delay_ms: float = 30000.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.1

    def __post_init__(self) -> None:
        problems = [
            (self.max_attempts < 1, f"max_attempts is {self.max_attempts}; need at least 1"),
            (self.base_delay_ms < 0, f"base_delay_ms is {self.base_delay_ms}; cannot be negative"),
            (
                self.max_delay_ms < self.base_delay_ms,
                f"max_delay_ms ({self.max_delay_ms}) is below base_delay_ms ({self.base_delay_ms})",
            ),
            (
                self.exponential_base < 1.0,
                f"exponential_base is {self.exponential_base}; backoff cannot shrink",
            ),
            (
                not 0.0 <= self.jitter_factor <= 1.0,
                f"jitter_factor is {self.jitter_factor}; expected a fraction in [0, 1]",
            ),
        ]
        for failed, message in problems:
            if failed:
                raise ValueError(message)

    def get_delay_ms(self, attempt: int) -> float:
        """Milliseconds to wait before retry number ``attempt`` (0 for the first retry)."""
        delay = self.base_delay_ms * self.exponential_base**attempt
        delay *= 1.0 + self.jitter_factor * random.random()  # nosec B311
        return min(delay, self.max_delay_ms)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Writes and searches: a handful of quick retries.
TRANSIENT_RETRY_CONFIG = RetryConfig(max_attempts=5)

# Bulk copies are slow to start and costly to reject; back off harder.
COPY_RETRY_CONFIG = RetryConfig(
    max_attempts=5,
    base_delay_ms=500.0,
    max_delay_ms=60000.0,
    jitter_factor=0.2,
)


@dataclass(frozen=True)
class ErrorClassification:
    """
    What an error means operationally.

    Attributes:
        severity: How loudly to report it.
        recoverability: Whether trying again can help.
        error_code: Stable identifier, used as a metric label.
        category: Which part of the migration failed (ingestion, reindex, ...).
        suggested_action: One line an operator can act on.
        retry_config: Backoff to use when retrying, if retrying makes sense.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str
    retry_config: RetryConfig | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "error_code": self.error_code,
            "category": self.category,
            "severity": self.severity.value,
            "recoverability": self.recoverability.value,
            "suggested_action": self.suggested_action,
        }
        if self.retry_config is not None:
            data["retry_config"] = self.retry_config.to_dict()
        return data


UNCLASSIFIED = ErrorClassification(
    severity=ErrorSeverity.ERROR,
    recoverability=ErrorRecoverability.FATAL,
    error_code="UNKNOWN_ERROR",
    category="unknown",
    suggested_action="Not a livereindex error; inspect the traceback",
)


class DeadlineExceeded(TimeoutError):
    """
    Cause attached to WriteFailed when a write outlives its deadline.

    Attributes:
        deadline: The deadline in seconds.
    """

    def __init__(self, deadline: float) -> None:
        self.deadline = deadline
        super().__init__(f"deadline of {deadline:g}s exceeded")


class ReindexError(Exception):
    """
    Root of the livereindex error hierarchy.

    Subclasses set ``_default_classification``; the ``severity``,
    ``recoverability``, ``error_code`` and ``retry_config`` shortcuts all
    read from ``classification``, so a subclass can override that one
    property to classify per instance.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="REINDEX_ERROR",
        category="general",
        suggested_action="Review logs for the failing operation",
    )

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def classification(self) -> ErrorClassification:
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        return self.classification.severity

    @property
    def recoverability(self) -> ErrorRecoverability:
        return self.classification.recoverability

    @property
    def error_code(self) -> str:
        return self.classification.error_code

    @property
    def retry_config(self) -> RetryConfig | None:
        return self.classification.retry_config

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "cause": None if self.cause is None else repr(self.cause),
            "classification": self.classification.to_dict(),
        }


class WriteFailed(ReindexError):
    """
    Raised when a document write to an index fails.

    Fatal to the worker that hit it and, through the pool's shared scope, to
    its siblings. A failed secondary write does not undo the primary write.

    Attributes:
        index: The index the write targeted.
        document_id: The id of the document being written.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="WRITE_FAILED",
        category="ingestion",
        suggested_action=(
            "Writes are being lost. Check engine health, then restart ingestion; "
            "re-sending the same ids is safe."
        ),
        retry_config=TRANSIENT_RETRY_CONFIG,
    )

    _deadline_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="WRITE_DEADLINE_EXCEEDED",
        category="ingestion",
        suggested_action=(
            "A write ran past its deadline. Check engine latency or raise "
            "the per-document deadline."
        ),
        retry_config=TRANSIENT_RETRY_CONFIG,
    )

    def __init__(self, index: str, document_id: int, cause: BaseException | None = None) -> None:
        self.index = index
        self.document_id = document_id
        super().__init__(
            f"Failed to index document {document_id} into {index!r}: {cause}",
            cause=cause,
        )

    @property
    def deadline_exceeded(self) -> bool:
        return isinstance(self.cause, DeadlineExceeded)

    @property
    def classification(self) -> ErrorClassification:
        if self.deadline_exceeded:
            return self._deadline_classification
        return self._default_classification


class QueryFailed(ReindexError):
    """
    Raised when a search against an index fails.

    Never fatal to ingestion; the progress observer logs it and moves on.

    Attributes:
        index: The index that was queried.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="QUERY_FAILED",
        category="observation",
        suggested_action="Progress cannot be reported; ingestion is unaffected",
        retry_config=TRANSIENT_RETRY_CONFIG,
    )

    def __init__(self, index: str, cause: BaseException | None = None) -> None:
        self.index = index
        super().__init__(f"Error searching index {index!r}: {cause}", cause=cause)


class CopyFailed(ReindexError):
    """
    Raised when the engine rejects or fails a bulk copy.

    Re-running the copy is safe: documents are keyed by id, so a repeated
    copy overwrites rather than duplicates.

    Attributes:
        source: The index being copied from.
        dest: The index being copied into.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="COPY_FAILED",
        category="reindex",
        suggested_action="Check that the source index exists, then retry the reindex",
        retry_config=COPY_RETRY_CONFIG,
    )

    def __init__(self, source: str, dest: str, cause: BaseException | None = None) -> None:
        self.source = source
        self.dest = dest
        super().__init__(f"Failed to reindex {source!r} into {dest!r}: {cause}", cause=cause)


class DeleteFailed(ReindexError):
    """
    Raised when an index cannot be deleted for a reason other than "not found".

    Attributes:
        index: The index being retired.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="DELETE_FAILED",
        category="retirement",
        suggested_action="Check engine permissions and index locks, then retire again",
    )

    def __init__(self, index: str, cause: BaseException | None = None) -> None:
        self.index = index
        super().__init__(f"Failed to delete index {index!r}: {cause}", cause=cause)


class ConvergenceTimeout(ReindexError):
    """
    Raised when two indices do not converge within the allotted time.

    Attributes:
        source: The index being caught up from.
        target: The index being caught up.
        last_sample: The last ConvergenceSample observed, if any.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="CONVERGENCE_TIMEOUT",
        category="convergence",
        suggested_action=(
            "Do not switch reads yet. Check that the reindex task completed "
            "and dual-writes are succeeding, then wait again."
        ),
    )

    def __init__(self, source: str, target: str, timeout: float, last_sample: Any = None) -> None:
        self.source = source
        self.target = target
        self.timeout = timeout
        self.last_sample = last_sample
        super().__init__(f"Indices {source!r} and {target!r} did not converge within {timeout:g}s")


class IndexStillReferenced(ReindexError):
    """
    Raised when policy forbids retiring an index the routing state still uses.

    The orchestrator itself only warns; the cutover runbook raises this.

    Attributes:
        index: The index that was to be retired.
        referenced_by: Routing slots still pointing at it.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="INDEX_STILL_REFERENCED",
        category="retirement",
        suggested_action="Move read, primary and secondary off the index, settle, then retire",
    )

    def __init__(self, index: str, referenced_by: list[str]) -> None:
        self.index = index
        self.referenced_by = list(referenced_by)
        super().__init__(
            f"Refusing to retire {index!r}: still referenced by {', '.join(referenced_by)}"
        )


class QueueClosedError(ReindexError):
    """Raised when a document is offered to a queue that has been closed."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="QUEUE_CLOSED",
        category="ingestion",
        suggested_action="Stop producing once the queue has been closed",
    )

    def __init__(self) -> None:
        super().__init__("Document queue is closed")


def is_ingestion_failure(exc: BaseException) -> bool:
    """True when ``exc`` means documents were not written, as opposed to merely not observed."""
    return isinstance(exc, WriteFailed)


def classify_exception(exc: BaseException) -> ErrorClassification:
    """The classification of a ReindexError, or UNCLASSIFIED for anything else."""
    if isinstance(exc, ReindexError):
        return exc.classification
    return UNCLASSIFIED


class ErrorHandler:
    """
    Opt-in retries around a single livereindex call.

    Only TRANSIENT ReindexErrors are retried; anything else, including
    foreign exceptions, propagates on the first failure. Each failure is
    logged at its severity's level, and ``alert_callback`` is called for
    the ones that should page someone.

    The CutoverRunbook wraps its reindex trigger in one of these:

        >>> handler = ErrorHandler(alert_callback=pager.notify)
        >>> task = await handler.execute_with_retry(
        ...     lambda: orchestrator.reindex("index-a", "index-b"),
        ...     "reindex",
        ...     retry_config=COPY_RETRY_CONFIG,
        ... )
    """

    def __init__(self, alert_callback: Callable[[ReindexError], None] | None = None) -> None:
        self.alert_callback = alert_callback

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        *,
        retry_config: RetryConfig | None = None,
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ) -> T:
        """
        Await ``operation()`` until it succeeds or retrying stops making sense.

        Args:
            operation: Zero-argument factory for the awaitable; called once per attempt.
            operation_name: Used in log messages.
            retry_config: Backoff to use. Defaults to the error's own suggestion,
                then TRANSIENT_RETRY_CONFIG.
            on_retry: Called as ``on_retry(attempt, error, delay_ms)`` before each wait.

        Raises:
            ReindexError: The last error, once it is not transient or attempts run out.
        """
        attempt = 0
        while True:
            try:
                result = await operation()
            except ReindexError as e:
                self._handle_error(e, operation_name)
                config = retry_config or e.retry_config or TRANSIENT_RETRY_CONFIG
                if not e.recoverability.should_retry:
                    raise
                if attempt + 1 >= config.max_attempts:
                    logger.error(
                        "Giving up on '%s' after %d attempts: %s",
                        operation_name,
                        attempt + 1,
                        e.message,
                    )
                    raise

                delay_ms = config.get_delay_ms(attempt)
                logger.warning(
                    "Retrying '%s' in %.2fs (attempt %d of %d failed)",
                    operation_name,
                    delay_ms / 1000.0,
                    attempt + 1,
                    config.max_attempts,
                )
                if on_retry is not None:
                    on_retry(attempt, e, delay_ms)
                await asyncio.sleep(delay_ms / 1000.0)
                attempt += 1
            else:
                if attempt:
                    logger.info("'%s' succeeded on attempt %d", operation_name, attempt + 1)
                return result

    def _handle_error(self, error: ReindexError, operation_name: str) -> None:
        logger.log(
            error.severity.log_level,
            "%s failed: %s",
            operation_name,
            error.message,
            extra={"error": error.to_dict()},
        )
        if self.alert_callback is None or not error.severity.should_alert:
            return
        try:
            self.alert_callback(error)
        except Exception:
            logger.exception("Alert callback raised while reporting %s", error.error_code)


__all__ = [
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "RetryConfig",
    "TRANSIENT_RETRY_CONFIG",
    "COPY_RETRY_CONFIG",
    "UNCLASSIFIED",
    "DeadlineExceeded",
    "ReindexError",
    "WriteFailed",
    "QueryFailed",
    "CopyFailed",
    "DeleteFailed",
    "ConvergenceTimeout",
    "IndexStillReferenced",
    "QueueClosedError",
    "ErrorHandler",
    "classify_exception",
    "is_ingestion_failure",
]
