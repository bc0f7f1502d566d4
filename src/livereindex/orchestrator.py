"""
MigrationOrchestrator - The cutover steps as discrete operations.

Each step of an online index migration is exposed as its own operation so an
operator (or the CutoverRunbook) can drive them one at a time while
ingestion keeps running:

    | Operation            | Effect                              | Failure            |
    |----------------------|-------------------------------------|--------------------|
    | set_read_index(ix)   | routing.read_index = ix             | none               |
    | set_primary_index(ix)| routing.primary_index = ix          | none               |
    | set_secondary_index  | routing.secondary_index = ix / None | none               |
    | reindex(src, dest)   | start a bulk copy, return on accept | CopyFailed         |
    | retire_index(ix)     | delete the index                    | DeleteFailed       |

Canonical sequence (MigrationPhase):
    SINGLE(A) -> set_secondary(B) -> DUAL_WRITE(A,B) -> reindex(A,B)
    -> CAUGHT_UP(A,B) -> set_read(B) -> READ_SWITCHED(A,B)
    -> set_primary(B); set_secondary(None) -> SINGLE_STALE(B, stale A)
    -> retire(A) -> SINGLE(B)

There is no automatic rollback; reverting runs the same sequence with the
indices swapped. The orchestrator does not refuse to retire an index that
the routing state still references. It logs a warning and exposes
references() so the caller can apply the policy.

Usage:
    >>> orchestrator = MigrationOrchestrator(store, routing)
    >>> orchestrator.set_secondary_index("orders-v2")
    >>> task = await orchestrator.reindex("orders-v1", "orders-v2")
    >>> await orchestrator.wait_for_copy(task, timeout=300)
    >>> orchestrator.phase
    <MigrationPhase.CAUGHT_UP: 'caught_up'>
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Any

from livereindex.exceptions import CopyFailed
from livereindex.models import (
    AuditEntry,
    CopyStatus,
    CopyTask,
    MigrationPhase,
    RoutingSnapshot,
)
from livereindex.observability import (
    ATTR_DEST_INDEX,
    ATTR_INDEX,
    ATTR_READ_INDEX,
    ATTR_ROUTING_FIELD,
    ATTR_SOURCE_INDEX,
    ATTR_TASK_ID,
    Tracer,
    create_tracer,
)
from livereindex.routing import RoutingState
from livereindex.storage.interface import SearchStore

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """
    Drives routing changes, bulk copies and index retirement.

    The routing setters are pure, non-blocking state mutations and may be
    called from any thread while ingestion workers are running.

    Args:
        store: Shared search store.
        routing: Shared routing state.
        audit_size: Number of audit entries kept in memory.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to emit spans when no tracer is given.
    """

    def __init__(
        self,
        store: SearchStore,
        routing: RoutingState,
        *,
        audit_size: int = 1000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._routing = routing
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        self._lock = threading.Lock()
        self._audit: deque[AuditEntry] = deque(maxlen=audit_size)
        self._known: set[str] = routing.snapshot().indices()
        self._caught_up: set[tuple[str, str]] = set()

    @property
    def routing(self) -> RoutingState:
        return self._routing

    @property
    def store(self) -> SearchStore:
        return self._store

    # --- routing mutations

    def set_read_index(self, index: str) -> None:
        """Serve queries from an index."""
        self._mutate("set_read_index", "read", index, self._routing.set_read_index)

    def set_primary_index(self, index: str) -> None:
        """Make an index the index of record for writes."""
        self._mutate("set_primary_index", "primary", index, self._routing.set_primary_index)

    def set_secondary_index(self, index: str | None) -> None:
        """Arm dual-writes to an index, or disarm them with None."""
        self._mutate(
            "set_secondary_index",
            "secondary",
            index or None,
            self._routing.set_secondary_index,
        )

    def _mutate(self, operation: str, field: str, index: str | None, setter: Any) -> None:
        with self._tracer.span(
            f"migration_orchestrator.{operation}",
            {ATTR_ROUTING_FIELD: field, ATTR_INDEX: index or ""},
        ):
            before = self._routing.snapshot()
            previous = setter(index)
            after = self._routing.snapshot()

        with self._lock:
            if index is not None:
                self._known.add(index)

        self._record(
            operation,
            (index,) if index else (),
            before,
            after,
            {"field": field, "previous": previous},
        )
        logger.info(
            "Routing %s: %s -> %s",
            field,
            previous,
            index,
            extra={"routing_field": field, "previous": previous, "current": index},
        )

    # --- engine operations

    async def reindex(self, source: str, dest: str) -> CopyTask:
        """
        Start a bulk copy from source into dest.

        Returns once the engine has accepted the copy. The copy may still be
        running: use wait_for_copy or the progress observer before switching
        reads. Safe to call again after a failure.

        Raises:
            CopyFailed: If the engine rejects the copy.
        """
        before = self._routing.snapshot()
        with self._tracer.span(
            "migration_orchestrator.reindex",
            {ATTR_SOURCE_INDEX: source, ATTR_DEST_INDEX: dest},
        ):
            task = await self._store.bulk_copy(source, dest)

        with self._lock:
            self._known.add(dest)
            self._caught_up.discard((source, dest))

        self._record(
            "reindex",
            (source, dest),
            before,
            self._routing.snapshot(),
            {"task_id": task.task_id},
        )
        return task

    async def copy_status(self, task: CopyTask) -> CopyStatus:
        """Poll the engine for a bulk copy's progress."""
        return await self._store.copy_status(task)

    async def wait_for_copy(
        self,
        task: CopyTask,
        timeout: float,
        interval: float = 1.0,
    ) -> CopyStatus:
        """
        Poll a bulk copy until the engine reports it complete.

        Args:
            task: The accepted copy.
            timeout: Maximum seconds to wait.
            interval: Seconds between polls.

        Returns:
            The final CopyStatus.

        Raises:
            CopyFailed: If the copy reports an error or does not finish in time.
        """
        with self._tracer.span(
            "migration_orchestrator.wait_for_copy",
            {
                ATTR_SOURCE_INDEX: task.source,
                ATTR_DEST_INDEX: task.dest,
                ATTR_TASK_ID: task.task_id or "",
            },
        ):
            try:
                async with asyncio.timeout(timeout):
                    while True:
                        status = await self._store.copy_status(task)
                        if status.failed:
                            raise CopyFailed(task.source, task.dest, RuntimeError(status.error))
                        if status.completed:
                            break
                        logger.debug(
                            "Reindex %s -> %s in progress: %d/%d",
                            task.source,
                            task.dest,
                            status.created + status.updated,
                            status.total,
                        )
                        await asyncio.sleep(interval)
            except TimeoutError as e:
                raise CopyFailed(
                    task.source,
                    task.dest,
                    TimeoutError(f"copy did not complete within {timeout:g}s"),
                ) from e

        self.mark_caught_up(task.source, task.dest)
        logger.info(
            "Reindex %s -> %s complete: %d created, %d updated",
            task.source,
            task.dest,
            status.created,
            status.updated,
            extra={"source_index": task.source, "dest_index": task.dest, "task_id": task.task_id},
        )
        return status

    def mark_caught_up(self, source: str, dest: str) -> None:
        """Record that dest holds everything source held when the copy started."""
        with self._lock:
            self._caught_up.add((source, dest))

    async def retire_index(self, index: str) -> None:
        """
        Delete an index. Retiring an already missing index succeeds.

        Retiring an index the routing state still references is allowed but
        logged as a warning; refusing it is the caller's policy.

        Raises:
            DeleteFailed: If the engine fails the delete for another reason.
        """
        referenced_by = self._routing.references(index)
        if referenced_by:
            logger.warning(
                "Retiring index %s still referenced by %s",
                index,
                ", ".join(referenced_by),
                extra={"index": index, "referenced_by": referenced_by},
            )

        before = self._routing.snapshot()
        with self._tracer.span(
            "migration_orchestrator.retire_index",
            {ATTR_INDEX: index, ATTR_READ_INDEX: before.read_index},
        ):
            await self._store.delete_index(index)

        with self._lock:
            self._known.discard(index)
            self._caught_up = {pair for pair in self._caught_up if index not in pair}

        self._record(
            "retire_index",
            (index,),
            before,
            self._routing.snapshot(),
            {"referenced_by": referenced_by},
        )
        logger.info("Retired index %s", index, extra={"index": index})

    # --- introspection

    def references(self, index: str) -> list[str]:
        """Routing slots still pointing at an index."""
        return self._routing.references(index)

    @property
    def stale_indices(self) -> set[str]:
        """Indices used during this run that no slot references and that are not retired."""
        referenced = self._routing.snapshot().indices()
        with self._lock:
            return self._known - referenced

    @property
    def phase(self) -> MigrationPhase:
        """
        Current cutover state, derived from routing and completed copies.

        The routing snapshot is not atomic, so during a transition the phase
        may briefly report either side of it.
        """
        snap = self._routing.snapshot()
        secondary = snap.secondary_index

        if secondary is None or secondary == snap.primary_index:
            if snap.read_index != snap.primary_index:
                return MigrationPhase.READ_SWITCHED
            if self.stale_indices:
                return MigrationPhase.SINGLE_STALE
            return MigrationPhase.SINGLE

        if snap.read_index == secondary:
            return MigrationPhase.READ_SWITCHED
        with self._lock:
            caught_up = (snap.primary_index, secondary) in self._caught_up
        if caught_up:
            return MigrationPhase.CAUGHT_UP
        return MigrationPhase.DUAL_WRITE

    @property
    def audit_log(self) -> list[AuditEntry]:
        """Recorded operations, oldest first."""
        with self._lock:
            return list(self._audit)

    def _record(
        self,
        operation: str,
        indices: tuple[str, ...],
        before: RoutingSnapshot,
        after: RoutingSnapshot,
        details: dict[str, Any],
    ) -> None:
        entry = AuditEntry(
            operation=operation,
            indices=indices,
            before=before,
            after=after,
            details=details,
        )
        with self._lock:
            self._audit.append(entry)


__all__ = ["MigrationOrchestrator"]
