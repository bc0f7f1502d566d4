"""
Elasticsearch implementation of the search store facade.

Wraps a single AsyncElasticsearch client. The client is created once at
process start (see ElasticsearchStore.from_settings) and handed to every
component by reference; it pools connections internally and is safe to
share between concurrent workers.

Engine calls used:
    - put: index API with an explicit document id
    - search: search API sorted on one field, with exact hit counts
    - bulk_copy: reindex API with wait_for_completion=False
    - copy_status: tasks API
    - delete_index: delete index API ("not found" is success)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError
from pydantic import ValidationError

from livereindex.exceptions import CopyFailed, DeleteFailed, QueryFailed, WriteFailed
from livereindex.models import CopyStatus, CopyTask, Document, SearchResult, SortOrder
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

if TYPE_CHECKING:
    from livereindex.config import ReindexSettings

logger = logging.getLogger(__name__)

_ENGINE_ERRORS = (ApiError, TransportError)


def _body(response: Any) -> dict[str, Any]:
    # ObjectApiResponse exposes the decoded JSON as .body
    return getattr(response, "body", response)


class ElasticsearchStore(SearchStore):
    """
    Search store backed by Elasticsearch.

    Example:
        >>> store = ElasticsearchStore.from_settings(ReindexSettings())
        >>> try:
        ...     await store.put("orders-v1", 1, "hello")
        ... finally:
        ...     await store.close()

    Args:
        client: A configured AsyncElasticsearch client.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to emit spans when no tracer is given.
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._client = client
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_settings(
        cls,
        settings: ReindexSettings,
        *,
        tracer: Tracer | None = None,
    ) -> ElasticsearchStore:
        """Build the store and its single client from process settings."""
        client = AsyncElasticsearch(
            settings.elasticsearch_url,
            request_timeout=settings.request_timeout,
        )
        logger.info(
            "Created Elasticsearch client",
            extra={"elasticsearch_url": settings.elasticsearch_url},
        )
        return cls(client, tracer=tracer, enable_tracing=settings.enable_tracing)

    @property
    def client(self) -> AsyncElasticsearch:
        return self._client

    async def put(self, index: str, document_id: int, payload: Any) -> None:
        try:
            source = Document(id=document_id, payload=payload).to_source()
        except ValidationError as e:
            raise WriteFailed(index, document_id, e) from e
        with self._tracer.span(
            "elasticsearch_store.put",
            {ATTR_INDEX: index, ATTR_DOCUMENT_ID: document_id},
        ):
            try:
                await self._client.index(index=index, id=str(document_id), document=source)
            except _ENGINE_ERRORS as e:
                raise WriteFailed(index, document_id, e) from e

    async def search(
        self,
        index: str,
        sort_field: str,
        order: SortOrder = SortOrder.DESC,
        limit: int = 10,
    ) -> SearchResult:
        with self._tracer.span(
            "elasticsearch_store.search",
            {ATTR_INDEX: index, ATTR_SORT_FIELD: sort_field, ATTR_LIMIT: limit},
        ):
            try:
                response = await self._client.search(
                    index=index,
                    sort=[{sort_field: {"order": order.value}}],
                    size=limit,
                    track_total_hits=True,
                )
            except _ENGINE_ERRORS as e:
                raise QueryFailed(index, e) from e

        try:
            return SearchResult.from_response(_body(response))
        except (KeyError, TypeError, ValueError) as e:
            raise QueryFailed(index, e) from e

    async def bulk_copy(self, source: str, dest: str) -> CopyTask:
        with self._tracer.span(
            "elasticsearch_store.bulk_copy",
            {ATTR_SOURCE_INDEX: source, ATTR_DEST_INDEX: dest},
        ):
            try:
                response = await self._client.reindex(
                    source={"index": source},
                    dest={"index": dest},
                    wait_for_completion=False,
                )
            except _ENGINE_ERRORS as e:
                raise CopyFailed(source, dest, e) from e

        task_id = _body(response).get("task")
        logger.info(
            "Reindex accepted: %s -> %s",
            source,
            dest,
            extra={"source_index": source, "dest_index": dest, "task_id": task_id},
        )
        return CopyTask(source=source, dest=dest, task_id=task_id)

    async def copy_status(self, task: CopyTask) -> CopyStatus:
        if task.task_id is None:
            return CopyStatus(task_id=None, completed=True)

        with self._tracer.span(
            "elasticsearch_store.copy_status",
            {ATTR_TASK_ID: task.task_id},
        ):
            try:
                response = await self._client.tasks.get(task_id=task.task_id)
            except _ENGINE_ERRORS as e:
                raise CopyFailed(task.source, task.dest, e) from e

        body = _body(response)
        status = body.get("task", {}).get("status", {})
        result = body.get("response") or {}

        error: str | None = None
        if body.get("error"):
            error = str(body["error"].get("reason", body["error"]))
        elif result.get("failures"):
            error = f"{len(result['failures'])} documents failed to copy"

        return CopyStatus(
            task_id=task.task_id,
            completed=bool(body.get("completed", False)),
            created=int(status.get("created", 0)),
            updated=int(status.get("updated", 0)),
            total=int(status.get("total", 0)),
            error=error,
        )

    async def delete_index(self, index: str) -> None:
        with self._tracer.span("elasticsearch_store.delete_index", {ATTR_INDEX: index}):
            try:
                await self._client.indices.delete(index=index)
            except NotFoundError:
                logger.info("Index %s already absent", index, extra={"index": index})
                return
            except _ENGINE_ERRORS as e:
                raise DeleteFailed(index, e) from e

    async def refresh(self, index: str) -> None:
        with self._tracer.span("elasticsearch_store.refresh", {ATTR_INDEX: index}):
            try:
                await self._client.indices.refresh(index=index)
            except _ENGINE_ERRORS as e:
                raise QueryFailed(index, e) from e

    async def close(self) -> None:
        await self._client.close()


__all__ = ["ElasticsearchStore"]
