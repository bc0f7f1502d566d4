"""
Observability utilities for livereindex.

Tracing, metrics and standard attribute definitions shared by every
component.

Example:
    >>> from livereindex.observability import create_tracer
    >>>
    >>> class MyStore:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from livereindex.observability.attributes import (
    ATTR_DEADLINE,
    ATTR_DEST_INDEX,
    ATTR_DOCUMENT_ID,
    ATTR_DUAL_WRITE,
    ATTR_ERROR_TYPE,
    ATTR_INDEX,
    ATTR_LIMIT,
    ATTR_PRIMARY_INDEX,
    ATTR_READ_INDEX,
    ATTR_ROUTING_FIELD,
    ATTR_SECONDARY_INDEX,
    ATTR_SORT_FIELD,
    ATTR_SOURCE_INDEX,
    ATTR_TASK_ID,
    ATTR_WORKERS,
)
from livereindex.observability.metrics import (
    IngestionMetrics,
    IngestionMetricSnapshot,
    reset_meter,
)
from livereindex.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Metrics
    "IngestionMetrics",
    "IngestionMetricSnapshot",
    "reset_meter",
    # Attributes
    "ATTR_DEADLINE",
    "ATTR_DEST_INDEX",
    "ATTR_DOCUMENT_ID",
    "ATTR_DUAL_WRITE",
    "ATTR_ERROR_TYPE",
    "ATTR_INDEX",
    "ATTR_LIMIT",
    "ATTR_PRIMARY_INDEX",
    "ATTR_READ_INDEX",
    "ATTR_ROUTING_FIELD",
    "ATTR_SECONDARY_INDEX",
    "ATTR_SORT_FIELD",
    "ATTR_SOURCE_INDEX",
    "ATTR_TASK_ID",
    "ATTR_WORKERS",
]
