"""
Unit tests for InMemorySearchStore.

Tests cover:
- Idempotent puts keyed by id
- Sorted searches with exact totals
- Bulk copy, immediate and delayed
- Idempotent index deletion
- Injected failures mapping to the error taxonomy
- Tracing integration
"""

import asyncio

import pytest
from pydantic import ValidationError

from livereindex.exceptions import CopyFailed, DeleteFailed, QueryFailed, WriteFailed
from livereindex.models import CopyTask, SortOrder
from livereindex.observability import MockTracer
from livereindex.storage import InjectedFailure, InMemorySearchStore
from tests.fixtures import INDEX_A, INDEX_B


async def fill(store: InMemorySearchStore, index: str, ids: range) -> None:
    for n in ids:
        await store.put(index, n, f"document {n}")


class TestPut:
    """Tests for put."""

    @pytest.mark.asyncio
    async def test_put_creates_index(self, store: InMemorySearchStore) -> None:
        await store.put(INDEX_A, 1, "hello")

        assert store.exists(INDEX_A)
        assert store.get(INDEX_A, 1) == {"id": 1, "message": "hello"}

    @pytest.mark.asyncio
    async def test_reput_same_id_does_not_change_count(self, store: InMemorySearchStore) -> None:
        await store.put(INDEX_A, 1, "hello")
        await store.put(INDEX_A, 1, "hello")

        result = await store.search(INDEX_A, "id", SortOrder.DESC, 10)
        assert result.total == 1

    @pytest.mark.asyncio
    async def test_bytes_payload_survives_search(self, store: InMemorySearchStore) -> None:
        await store.put(INDEX_A, 1, b"\x00\xffhello")

        result = await store.search(INDEX_A, "id", SortOrder.DESC, 1)

        assert result.hits[0].payload == b"\x00\xffhello"

    @pytest.mark.asyncio
    async def test_invalid_document_is_write_failed(self, store: InMemorySearchStore) -> None:
        with pytest.raises(WriteFailed) as exc_info:
            await store.put(INDEX_A, -1, "x")

        assert exc_info.value.document_id == -1
        assert isinstance(exc_info.value.cause, ValidationError)
        assert not store.exists(INDEX_A)

    @pytest.mark.asyncio
    async def test_injected_put_failure(self, store: InMemorySearchStore) -> None:
        store.inject_failure(INDEX_A, "put")

        with pytest.raises(WriteFailed) as exc_info:
            await store.put(INDEX_A, 1, "hello")

        assert exc_info.value.index == INDEX_A
        assert exc_info.value.document_id == 1
        assert isinstance(exc_info.value.cause, InjectedFailure)
        assert not store.exists(INDEX_A)

    @pytest.mark.asyncio
    async def test_clear_failures(self, store: InMemorySearchStore) -> None:
        store.inject_failure(INDEX_A)
        store.clear_failures()

        await store.put(INDEX_A, 1, "hello")

        assert store.count(INDEX_A) == 1


class TestSearch:
    """Tests for search."""

    @pytest.mark.asyncio
    async def test_most_recent_first(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(10))

        result = await store.search(INDEX_A, "id", SortOrder.DESC, 3)

        assert result.total == 10
        assert [hit.id for hit in result.hits] == [9, 8, 7]
        assert result.latest_id == 9

    @pytest.mark.asyncio
    async def test_ascending(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(5))

        result = await store.search(INDEX_A, "id", SortOrder.ASC, 2)

        assert [hit.id for hit in result.hits] == [0, 1]

    @pytest.mark.asyncio
    async def test_missing_index_fails(self, store: InMemorySearchStore) -> None:
        with pytest.raises(QueryFailed) as exc_info:
            await store.search("missing", "id", SortOrder.DESC, 1)

        assert exc_info.value.index == "missing"

    @pytest.mark.asyncio
    async def test_empty_index(self, store: InMemorySearchStore) -> None:
        store.create_index(INDEX_A)

        result = await store.search(INDEX_A, "id", SortOrder.DESC, 1)

        assert result.total == 0
        assert result.latest_id is None

    @pytest.mark.asyncio
    async def test_injected_search_failure(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(1))
        store.inject_failure(INDEX_A, "search")

        with pytest.raises(QueryFailed):
            await store.search(INDEX_A, "id", SortOrder.DESC, 1)


class TestBulkCopy:
    """Tests for bulk_copy and copy_status."""

    @pytest.mark.asyncio
    async def test_copy_completes_immediately(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(5))

        task = await store.bulk_copy(INDEX_A, INDEX_B)
        status = await store.copy_status(task)

        assert task.task_id is not None
        assert status.completed
        assert status.created == 5
        assert store.ids(INDEX_B) == set(range(5))

    @pytest.mark.asyncio
    async def test_copy_overwrites_existing_ids(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(5))
        await fill(store, INDEX_B, range(3, 8))

        task = await store.bulk_copy(INDEX_A, INDEX_B)
        status = await store.copy_status(task)

        assert status.created == 3
        assert status.updated == 2
        assert store.count(INDEX_B) == 8

    @pytest.mark.asyncio
    async def test_repeated_copy_is_safe(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(5))

        await store.bulk_copy(INDEX_A, INDEX_B)
        await store.bulk_copy(INDEX_A, INDEX_B)

        assert store.count(INDEX_B) == 5

    @pytest.mark.asyncio
    async def test_delayed_copy_is_accepted_before_completion(self) -> None:
        store = InMemorySearchStore(copy_delay=0.05, enable_tracing=False)
        await fill(store, INDEX_A, range(5))

        task = await store.bulk_copy(INDEX_A, INDEX_B)
        pending = await store.copy_status(task)

        assert not pending.completed
        assert pending.total == 5
        assert store.count(INDEX_B) == 0

        await asyncio.sleep(0.1)
        done = await store.copy_status(task)

        assert done.completed
        assert store.count(INDEX_B) == 5

    @pytest.mark.asyncio
    async def test_copy_from_missing_index_fails(self, store: InMemorySearchStore) -> None:
        with pytest.raises(CopyFailed) as exc_info:
            await store.bulk_copy("missing", INDEX_B)

        assert exc_info.value.source == "missing"
        assert exc_info.value.dest == INDEX_B

    @pytest.mark.asyncio
    async def test_status_of_unknown_task_fails(self, store: InMemorySearchStore) -> None:
        with pytest.raises(CopyFailed):
            await store.copy_status(CopyTask(source=INDEX_A, dest=INDEX_B, task_id="memory:999"))

    @pytest.mark.asyncio
    async def test_status_without_task_id_is_complete(self, store: InMemorySearchStore) -> None:
        status = await store.copy_status(CopyTask(source=INDEX_A, dest=INDEX_B))

        assert status.completed

    @pytest.mark.asyncio
    async def test_close_cancels_pending_copies(self) -> None:
        store = InMemorySearchStore(copy_delay=10, enable_tracing=False)
        await fill(store, INDEX_A, range(1))
        await store.bulk_copy(INDEX_A, INDEX_B)

        await store.close()

        assert not store.exists(INDEX_B)


class TestDeleteIndex:
    """Tests for delete_index."""

    @pytest.mark.asyncio
    async def test_delete_existing(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(1))

        await store.delete_index(INDEX_A)

        assert not store.exists(INDEX_A)

    @pytest.mark.asyncio
    async def test_delete_missing_is_success(self, store: InMemorySearchStore) -> None:
        await store.delete_index(INDEX_A)
        await store.delete_index(INDEX_A)

    @pytest.mark.asyncio
    async def test_injected_delete_failure(self, store: InMemorySearchStore) -> None:
        await fill(store, INDEX_A, range(1))
        store.inject_failure(INDEX_A, "delete")

        with pytest.raises(DeleteFailed):
            await store.delete_index(INDEX_A)

        assert store.exists(INDEX_A)


class TestTracing:
    @pytest.mark.asyncio
    async def test_operations_create_spans(self) -> None:
        tracer = MockTracer()
        store = InMemorySearchStore(tracer=tracer)

        await store.put(INDEX_A, 1, "x")
        await store.search(INDEX_A, "id", SortOrder.DESC, 1)
        await store.bulk_copy(INDEX_A, INDEX_B)
        await store.delete_index(INDEX_A)

        assert tracer.span_names == [
            "inmemory_search_store.put",
            "inmemory_search_store.search",
            "inmemory_search_store.bulk_copy",
            "inmemory_search_store.delete_index",
        ]
