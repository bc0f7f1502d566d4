"""
Standard span and metric attributes for livereindex.

Attribute constants used across all livereindex components for consistent
span naming and metric labeling.

Example:
    >>> from livereindex.observability.attributes import ATTR_INDEX, ATTR_DOCUMENT_ID
    >>>
    >>> with tracer.span(
    ...     "livereindex.store.put",
    ...     {ATTR_INDEX: "a", ATTR_DOCUMENT_ID: 42},
    ... ):
    ...     pass
"""

# =============================================================================
# Document Attributes
# =============================================================================

ATTR_DOCUMENT_ID = "livereindex.document.id"
"""Identifier of the document being written (integer)."""

ATTR_INDEX = "livereindex.index"
"""Name of the index an operation targets."""

# =============================================================================
# Routing Attributes
# =============================================================================

ATTR_READ_INDEX = "livereindex.routing.read_index"
"""Index currently serving reads."""

ATTR_PRIMARY_INDEX = "livereindex.routing.primary_index"
"""Index currently receiving writes as the index of record."""

ATTR_SECONDARY_INDEX = "livereindex.routing.secondary_index"
"""Index receiving duplicate writes, or "none"."""

ATTR_ROUTING_FIELD = "livereindex.routing.field"
"""Name of the routing slot being changed."""

# =============================================================================
# Copy / Search Attributes
# =============================================================================

ATTR_SOURCE_INDEX = "livereindex.copy.source"
"""Index data is copied from."""

ATTR_DEST_INDEX = "livereindex.copy.dest"
"""Index data is copied into."""

ATTR_TASK_ID = "livereindex.copy.task_id"
"""Engine task identifier for an accepted copy."""

ATTR_SORT_FIELD = "livereindex.search.sort_field"
"""Field a search is sorted on."""

ATTR_LIMIT = "livereindex.search.limit"
"""Maximum number of hits requested."""

# =============================================================================
# Pipeline Attributes
# =============================================================================

ATTR_WORKERS = "livereindex.pipeline.workers"
"""Number of ingestion workers in the pool."""

ATTR_DEADLINE = "livereindex.pipeline.deadline_seconds"
"""Per-document write deadline in seconds."""

ATTR_DUAL_WRITE = "livereindex.pipeline.dual_write"
"""Whether the write also went to the secondary index (boolean)."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "error.type"
"""Exception class name (OTEL semantic convention)."""


__all__ = [
    "ATTR_DOCUMENT_ID",
    "ATTR_INDEX",
    "ATTR_READ_INDEX",
    "ATTR_PRIMARY_INDEX",
    "ATTR_SECONDARY_INDEX",
    "ATTR_ROUTING_FIELD",
    "ATTR_SOURCE_INDEX",
    "ATTR_DEST_INDEX",
    "ATTR_TASK_ID",
    "ATTR_SORT_FIELD",
    "ATTR_LIMIT",
    "ATTR_WORKERS",
    "ATTR_DEADLINE",
    "ATTR_DUAL_WRITE",
    "ATTR_ERROR_TYPE",
]
