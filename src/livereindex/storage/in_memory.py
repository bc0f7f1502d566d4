"""
In-memory search store implementation.

Useful for testing and development. Not suitable for production as all
documents are lost when the process terminates.

Mimics the engine behaviors the migration relies on:
    - Writes auto-create the index and overwrite by id
    - Searching or copying from a missing index fails
    - Deleting a missing index is a no-op
    - Bulk copies can complete after a delay, like a server-side task
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

from pydantic import ValidationError

from livereindex.exceptions import CopyFailed, DeleteFailed, QueryFailed, WriteFailed
from livereindex.models import (
    ID_FIELD,
    CopyStatus,
    CopyTask,
    Document,
    SearchHit,
    SearchResult,
    SortOrder,
)
from livereindex.observability import (
    ATTR_DEST_INDEX,
    ATTR_DOCUMENT_ID,
    ATTR_INDEX,
    ATTR_LIMIT,
    ATTR_SORT_FIELD,
    ATTR_SOURCE_INDEX,
    ATTR_TASK_ID,
    Tracer,
    create_tracer,
)
from livereindex.storage.interface import SearchStore

logger = logging.getLogger(__name__)

PUT = "put"
SEARCH = "search"
COPY = "copy"
DELETE = "delete"


class InjectedFailure(ConnectionError):
    """Cause attached to failures injected with InMemorySearchStore.inject_failure."""


class InMemorySearchStore(SearchStore):
    """
    In-memory implementation of the search store.

    Documents are kept per index in dictionaries keyed by id. Suitable for:

    - Unit testing
    - Development environments
    - Rehearsing a cutover without an engine

    Example:
        >>> store = InMemorySearchStore()
        >>> await store.put("a", 1, "hello")
        >>> (await store.search("a", "id", SortOrder.DESC, 1)).total
        1

    Args:
        write_latency: Seconds each put sleeps before applying.
        copy_delay: Seconds a bulk copy takes to apply after it is accepted.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to emit spans when no tracer is given.
    """

    def __init__(
        self,
        *,
        write_latency: float = 0.0,
        copy_delay: float = 0.0,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.write_latency = write_latency
        self.copy_delay = copy_delay

        self._indices: dict[str, dict[int, dict[str, Any]]] = {}
        self._failures: dict[str, set[str]] = {}
        self._tasks: dict[str, CopyStatus] = {}
        self._copy_tasks: set[asyncio.Task[None]] = set()
        self._task_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    # --- fault injection

    def inject_failure(self, index: str, *operations: str) -> None:
        """
        Make the given operations fail for an index.

        Args:
            index: Index to fail.
            operations: Any of "put", "search", "copy", "delete" (default: all).
        """
        ops = set(operations or (PUT, SEARCH, COPY, DELETE))
        self._failures.setdefault(index, set()).update(ops)

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check_failure(self, index: str, operation: str) -> None:
        if operation in self._failures.get(index, ()):
            raise InjectedFailure(f"injected {operation} failure on {index!r}")

    # --- inspection helpers

    def exists(self, index: str) -> bool:
        return index in self._indices

    def count(self, index: str) -> int:
        return len(self._indices.get(index, {}))

    def ids(self, index: str) -> set[int]:
        return set(self._indices.get(index, {}))

    def get(self, index: str, document_id: int) -> dict[str, Any] | None:
        return self._indices.get(index, {}).get(document_id)

    def create_index(self, index: str) -> None:
        self._indices.setdefault(index, {})

    @property
    def index_names(self) -> list[str]:
        return sorted(self._indices)

    # --- SearchStore

    async def put(self, index: str, document_id: int, payload: Any) -> None:
        try:
            source = Document(id=document_id, payload=payload).to_source()
        except ValidationError as e:
            raise WriteFailed(index, document_id, e) from e
        with self._tracer.span(
            "inmemory_search_store.put",
            {ATTR_INDEX: index, ATTR_DOCUMENT_ID: document_id},
        ):
            try:
                self._check_failure(index, PUT)
            except InjectedFailure as e:
                raise WriteFailed(index, document_id, e) from e

            if self.write_latency:
                await asyncio.sleep(self.write_latency)

            async with self._lock:
                self._indices.setdefault(index, {})[document_id] = source

    async def search(
        self,
        index: str,
        sort_field: str,
        order: SortOrder = SortOrder.DESC,
        limit: int = 10,
    ) -> SearchResult:
        with self._tracer.span(
            "inmemory_search_store.search",
            {ATTR_INDEX: index, ATTR_SORT_FIELD: sort_field, ATTR_LIMIT: limit},
        ):
            try:
                self._check_failure(index, SEARCH)
            except InjectedFailure as e:
                raise QueryFailed(index, e) from e

            async with self._lock:
                docs = self._indices.get(index)
                if docs is None:
                    raise QueryFailed(index, LookupError(f"no such index: {index!r}"))
                sources = list(docs.values())

        total = len(sources)
        sources = [s for s in sources if s.get(sort_field) is not None]
        sources.sort(key=lambda s: s[sort_field], reverse=order is SortOrder.DESC)
        hits = [
            SearchHit(
                id=s[ID_FIELD],
                payload=Document.payload_from_source(s),
                sort=[s[sort_field]],
            )
            for s in sources[:limit]
        ]
        return SearchResult(total=total, hits=hits)

    async def bulk_copy(self, source: str, dest: str) -> CopyTask:
        with self._tracer.span(
            "inmemory_search_store.bulk_copy",
            {ATTR_SOURCE_INDEX: source, ATTR_DEST_INDEX: dest},
        ):
            try:
                self._check_failure(source, COPY)
            except InjectedFailure as e:
                raise CopyFailed(source, dest, e) from e

            async with self._lock:
                docs = self._indices.get(source)
                if docs is None:
                    raise CopyFailed(source, dest, LookupError(f"no such index: {source!r}"))
                snapshot = dict(docs)

            task_id = f"memory:{next(self._task_ids)}"
            self._tasks[task_id] = CopyStatus(
                task_id=task_id, completed=False, total=len(snapshot)
            )

            if self.copy_delay:
                copy = asyncio.create_task(self._apply_copy(task_id, dest, snapshot))
                self._copy_tasks.add(copy)
                copy.add_done_callback(self._copy_tasks.discard)
            else:
                await self._apply_copy(task_id, dest, snapshot)

        return CopyTask(source=source, dest=dest, task_id=task_id)

    async def _apply_copy(
        self,
        task_id: str,
        dest: str,
        snapshot: dict[int, dict[str, Any]],
    ) -> None:
        if self.copy_delay:
            await asyncio.sleep(self.copy_delay)

        async with self._lock:
            target = self._indices.setdefault(dest, {})
            created = sum(1 for doc_id in snapshot if doc_id not in target)
            target.update(snapshot)

        self._tasks[task_id] = CopyStatus(
            task_id=task_id,
            completed=True,
            created=created,
            updated=len(snapshot) - created,
            total=len(snapshot),
        )

    async def copy_status(self, task: CopyTask) -> CopyStatus:
        if task.task_id is None:
            return CopyStatus(task_id=None, completed=True)

        with self._tracer.span(
            "inmemory_search_store.copy_status",
            {ATTR_TASK_ID: task.task_id},
        ):
            status = self._tasks.get(task.task_id)
            if status is None:
                raise CopyFailed(
                    task.source,
                    task.dest,
                    LookupError(f"no such task: {task.task_id!r}"),
                )
            return status

    async def delete_index(self, index: str) -> None:
        with self._tracer.span("inmemory_search_store.delete_index", {ATTR_INDEX: index}):
            try:
                self._check_failure(index, DELETE)
            except InjectedFailure as e:
                raise DeleteFailed(index, e) from e

            async with self._lock:
                if self._indices.pop(index, None) is None:
                    logger.info("Index %s already absent", index, extra={"index": index})

    async def refresh(self, index: str) -> None:
        # Writes are visible immediately.
        return None

    async def close(self) -> None:
        pending = list(self._copy_tasks)
        for copy in pending:
            copy.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


__all__ = [
    "InMemorySearchStore",
    "InjectedFailure",
]
