"""
Data models for the livereindex migration system.

Models in this module:

Enums:
    - SortOrder: Sort direction for search requests
    - MigrationPhase: Cutover state derived from the routing state

Documents and search responses:
    - Document: Immutable unit of ingestion, keyed by an idempotent id
    - SearchHit: One decoded search hit
    - SearchResult: Typed search response, decoded once at the store boundary

Migration bookkeeping:
    - RoutingSnapshot: Point-in-time (non-atomic) view of the routing slots
    - IndexSample: Latest id and document count of one index
    - ConvergenceSample: Comparison of two IndexSamples
    - CopyTask: Handle for an accepted server-side bulk copy
    - CopyStatus: Progress of a bulk copy as reported by the engine
    - AuditEntry: Record of one orchestrator operation
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

#: Field holding the document id inside the stored source. Sorting on it
#: gives "most recent first" for sequential producers.
ID_FIELD = "id"

#: Field holding the document payload inside the stored source.
PAYLOAD_FIELD = "message"

#: Field naming how the payload was encoded for storage; absent for plain payloads.
ENCODING_FIELD = "encoding"

BASE64 = "base64"


class SortOrder(Enum):
    """Sort direction for search requests."""

    ASC = "asc"
    DESC = "desc"


class MigrationPhase(Enum):
    """
    Cutover state, named by which indices are active where.

    Canonical sequence:
        SINGLE(A) -> DUAL_WRITE(A,B) -> CAUGHT_UP(A,B) -> READ_SWITCHED(A,B)
        -> SINGLE_STALE(B, stale A) -> SINGLE(B)

    The phase is derived, never stored: it is computed from the routing
    slots plus the set of copies known to have completed.
    """

    SINGLE = "single"
    """One index serves reads and writes; no secondary."""

    DUAL_WRITE = "dual_write"
    """Secondary armed; historical data not yet copied."""

    CAUGHT_UP = "caught_up"
    """Secondary armed and the bulk copy into it has completed."""

    READ_SWITCHED = "read_switched"
    """Reads served from the secondary while the old primary still takes writes."""

    SINGLE_STALE = "single_stale"
    """New index is primary and read; the old index still exists."""


class Document(BaseModel):
    """
    Immutable unit of ingestion.

    The id is the idempotency key: writing the same id again overwrites the
    stored document instead of creating a duplicate.

    Attributes:
        id: Unique ordinal of the document.
        payload: Opaque content. Bytes are stored base64-encoded and tagged
            with ENCODING_FIELD so search hands them back as bytes.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="Idempotency key of the document")
    payload: str | bytes | dict[str, Any] = Field(default="", description="Opaque content")

    def to_source(self) -> dict[str, Any]:
        """Return the body stored in the index for this document."""
        if isinstance(self.payload, bytes):
            return {
                ID_FIELD: self.id,
                PAYLOAD_FIELD: base64.b64encode(self.payload).decode("ascii"),
                ENCODING_FIELD: BASE64,
            }
        return {ID_FIELD: self.id, PAYLOAD_FIELD: self.payload}

    @staticmethod
    def payload_from_source(source: dict[str, Any]) -> Any:
        """Return the payload stored in ``source``, decoding bytes written by to_source()."""
        payload = source.get(PAYLOAD_FIELD)
        if source.get(ENCODING_FIELD) == BASE64 and isinstance(payload, str):
            return base64.b64decode(payload)
        return payload

    def __str__(self) -> str:
        return f"Document(id={self.id})"


class SearchHit(BaseModel):
    """
    One hit in a search response.

    Attributes:
        id: Document id.
        payload: Stored payload.
        sort: Sort values returned by the engine, if any.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    payload: Any = None
    sort: list[Any] | None = None


class SearchResult(BaseModel):
    """
    Typed search response.

    Attributes:
        total: Exact number of documents matching the query.
        hits: Matches in the requested sort order.
    """

    model_config = ConfigDict(frozen=True)

    total: int = 0
    hits: list[SearchHit] = Field(default_factory=list)

    @property
    def latest_id(self) -> int | None:
        """Id of the first hit, or None for an empty result."""
        return self.hits[0].id if self.hits else None

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> SearchResult:
        """
        Decode an Elasticsearch search response body.

        Args:
            response: The raw response body.

        Returns:
            The decoded SearchResult.
        """
        hits_section = response.get("hits", {})
        total = hits_section.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)

        hits = []
        for raw in hits_section.get("hits", []):
            source = raw.get("_source") or {}
            doc_id = source.get(ID_FIELD, raw.get("_id"))
            hits.append(
                SearchHit(
                    id=int(doc_id),
                    payload=Document.payload_from_source(source),
                    sort=raw.get("sort"),
                )
            )
        return cls(total=int(total), hits=hits)


@dataclass(frozen=True)
class RoutingSnapshot:
    """
    Point-in-time view of the routing slots.

    Each slot is read under its own lock, one after the other, so a snapshot
    taken while the orchestrator is mid-transition may mix old and new
    values. Use it for logging and audit, not for decisions that need
    atomicity.

    Attributes:
        read_index: Index serving queries.
        primary_index: Index of record for writes.
        secondary_index: Additional write target, or None when dual-write is off.
    """

    read_index: str
    primary_index: str
    secondary_index: str | None

    @property
    def dual_write(self) -> bool:
        return self.secondary_index is not None

    def indices(self) -> set[str]:
        """All index names referenced by the snapshot."""
        names = {self.read_index, self.primary_index}
        if self.secondary_index is not None:
            names.add(self.secondary_index)
        return names

    def to_dict(self) -> dict[str, Any]:
        return {
            "read_index": self.read_index,
            "primary_index": self.primary_index,
            "secondary_index": self.secondary_index,
        }


@dataclass(frozen=True)
class IndexSample:
    """
    Latest document and count of one index at a point in time.

    A failed query does not raise; it is recorded in `error` instead, since
    observation is best-effort.

    Attributes:
        index: The sampled index.
        total: Exact document count (0 when the query failed).
        latest_id: Highest id in the index, or None if empty or failed.
        sampled_at: When the sample was taken.
        error: Description of the query failure, if any.
    """

    index: str
    total: int = 0
    latest_id: int | None = None
    sampled_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ConvergenceSample:
    """
    Comparison of two indices.

    Two indices have converged when both samples succeeded and they report
    the same document count and the same most recent id.

    Attributes:
        source: Sample of the index being caught up from.
        target: Sample of the index being caught up.
    """

    source: IndexSample
    target: IndexSample

    @property
    def converged(self) -> bool:
        return (
            self.source.ok
            and self.target.ok
            and self.source.total == self.target.total
            and self.source.latest_id == self.target.latest_id
        )

    @property
    def lag(self) -> int:
        """Documents the target is behind the source (negative if ahead)."""
        return self.source.total - self.target.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.index,
            "target": self.target.index,
            "source_total": self.source.total,
            "target_total": self.target.total,
            "source_latest_id": self.source.latest_id,
            "target_latest_id": self.target.latest_id,
            "converged": self.converged,
            "lag": self.lag,
        }


@dataclass(frozen=True)
class CopyTask:
    """
    Handle for a server-side bulk copy the engine has accepted.

    Acceptance does not mean completion; poll with copy_status or wait for
    convergence before relying on the destination.

    Attributes:
        source: Index being copied from.
        dest: Index being copied into.
        task_id: Engine task id, or None when the copy ran synchronously.
        accepted_at: When the engine accepted the copy.
    """

    source: str
    dest: str
    task_id: str | None = None
    accepted_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class CopyStatus:
    """
    Progress of a bulk copy.

    Attributes:
        task_id: Engine task id, if any.
        completed: Whether the engine reports the copy as finished.
        created: Documents created in the destination so far.
        updated: Documents overwritten in the destination so far.
        total: Documents the copy will process.
        error: Failure description reported by the engine, if any.
    """

    task_id: str | None
    completed: bool
    created: int = 0
    updated: int = 0
    total: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class AuditEntry:
    """
    Record of one orchestrator operation.

    Attributes:
        operation: Operation name (e.g. "set_read_index", "reindex").
        indices: Index names the operation acted on.
        before: Routing snapshot before the operation.
        after: Routing snapshot after the operation.
        occurred_at: When the operation completed.
        details: Additional operation-specific context.
    """

    operation: str
    indices: tuple[str, ...]
    before: RoutingSnapshot
    after: RoutingSnapshot
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "indices": list(self.indices),
            "before": self.before.to_dict(),
            "after": self.after.to_dict(),
            "occurred_at": self.occurred_at.isoformat(),
            "details": dict(self.details),
        }


__all__ = [
    "ID_FIELD",
    "PAYLOAD_FIELD",
    "ENCODING_FIELD",
    "SortOrder",
    "MigrationPhase",
    "Document",
    "SearchHit",
    "SearchResult",
    "RoutingSnapshot",
    "IndexSample",
    "ConvergenceSample",
    "CopyTask",
    "CopyStatus",
    "AuditEntry",
]
