"""
Storage client facade interface.

Defines the narrow capability contract the rest of livereindex uses to talk
to the search engine. Every operation maps to exactly one engine call, and
the engine's wire format never leaks past this boundary: search responses are
decoded into SearchResult here.

Key classes:
- SearchStore: Abstract base class for search store implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from livereindex.models import CopyStatus, CopyTask, SearchResult, SortOrder


class SearchStore(ABC):
    """
    Abstract base class for search stores.

    A store is constructed once at process start and shared by reference
    between the ingestion workers, the progress observer and the
    orchestrator. Implementations must be safe for concurrent use.

    Concrete implementations:
    - ElasticsearchStore: Backed by the Elasticsearch async client
    - InMemorySearchStore: For testing and development

    Example:
        >>> store = ElasticsearchStore.from_settings(settings)
        >>> await store.put("orders-v1", 42, {"total": 10})
        >>> result = await store.search("orders-v1", "id", SortOrder.DESC, 1)
        >>> result.latest_id
        42
    """

    @abstractmethod
    async def put(self, index: str, document_id: int, payload: Any) -> None:
        """
        Index one document, overwriting any document with the same id.

        Args:
            index: Target index.
            document_id: Idempotency key of the document.
            payload: Opaque document content.

        Raises:
            WriteFailed: If the engine rejects the write or is unreachable.
        """

    @abstractmethod
    async def search(
        self,
        index: str,
        sort_field: str,
        order: SortOrder = SortOrder.DESC,
        limit: int = 10,
    ) -> SearchResult:
        """
        Return the first `limit` documents ordered by `sort_field`, plus the exact total.

        Args:
            index: Index to query.
            sort_field: Field to sort on.
            order: Sort direction; DESC returns the most recent first.
            limit: Maximum number of hits to return.

        Raises:
            QueryFailed: If the query fails.
        """

    @abstractmethod
    async def bulk_copy(self, source: str, dest: str) -> CopyTask:
        """
        Start a server-side copy of every document from source into dest.

        Returns once the engine has accepted the copy, not when it completes.
        Documents are keyed by id, so running the copy again is safe.

        Raises:
            CopyFailed: If the engine rejects the copy.
        """

    @abstractmethod
    async def copy_status(self, task: CopyTask) -> CopyStatus:
        """
        Report the progress of a bulk copy.

        Raises:
            CopyFailed: If the status cannot be retrieved.
        """

    @abstractmethod
    async def delete_index(self, index: str) -> None:
        """
        Delete an index. Deleting a missing index succeeds.

        Raises:
            DeleteFailed: For any failure other than "not found".
        """

    @abstractmethod
    async def refresh(self, index: str) -> None:
        """
        Make recent writes to an index visible to search.

        Raises:
            QueryFailed: If the refresh fails.
        """

    async def close(self) -> None:
        """Release the underlying connection. The default does nothing."""
        return None


__all__ = ["SearchStore"]
