"""
livereindex - Online, zero-downtime migration of a live search index.

This library provides:
- Routing state with independent read, primary and secondary slots
- Concurrent dual-write ingestion pipeline with per-document deadlines
- Bulk reindex, convergence observation and index retirement
- A cutover runbook that sequences the steps while writes keep flowing
- Elasticsearch and in-memory storage backends
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("livereindex")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from livereindex.config import PipelineConfig, ReindexSettings, RunbookConfig
from livereindex.exceptions import (
    ConvergenceTimeout,
    CopyFailed,
    DeadlineExceeded,
    DeleteFailed,
    ErrorClassification,
    ErrorHandler,
    ErrorRecoverability,
    ErrorSeverity,
    IndexStillReferenced,
    QueryFailed,
    QueueClosedError,
    ReindexError,
    RetryConfig,
    WriteFailed,
    classify_exception,
    is_ingestion_failure,
)
from livereindex.models import (
    AuditEntry,
    ConvergenceSample,
    CopyStatus,
    CopyTask,
    Document,
    IndexSample,
    MigrationPhase,
    RoutingSnapshot,
    SearchHit,
    SearchResult,
    SortOrder,
)
from livereindex.observability import IngestionMetrics
from livereindex.observer import ProgressObserver
from livereindex.orchestrator import MigrationOrchestrator
from livereindex.pipeline import DocumentQueue, IngestionPipeline, IngestReport
from livereindex.producer import SequentialProducer
from livereindex.routing import RoutingState
from livereindex.runbook import CutoverResult, CutoverRunbook
from livereindex.storage import (
    ElasticsearchStore,
    InMemorySearchStore,
    SearchStore,
)

__all__ = [
    "__version__",
    # Configuration
    "ReindexSettings",
    "PipelineConfig",
    "RunbookConfig",
    # Models
    "Document",
    "SearchHit",
    "SearchResult",
    "SortOrder",
    "RoutingSnapshot",
    "IndexSample",
    "ConvergenceSample",
    "CopyTask",
    "CopyStatus",
    "AuditEntry",
    "MigrationPhase",
    # Components
    "RoutingState",
    "SearchStore",
    "ElasticsearchStore",
    "InMemorySearchStore",
    "DocumentQueue",
    "IngestionPipeline",
    "IngestReport",
    "SequentialProducer",
    "ProgressObserver",
    "MigrationOrchestrator",
    "CutoverRunbook",
    "CutoverResult",
    "IngestionMetrics",
    # Exceptions
    "ReindexError",
    "WriteFailed",
    "QueryFailed",
    "CopyFailed",
    "DeleteFailed",
    "ConvergenceTimeout",
    "IndexStillReferenced",
    "QueueClosedError",
    "DeadlineExceeded",
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "RetryConfig",
    "ErrorHandler",
    "classify_exception",
    "is_ingestion_failure",
]
