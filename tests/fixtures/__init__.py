"""
Shared test helpers for livereindex tests.

Provides index names, document factories and a store that records the
order of engine calls.
"""

from __future__ import annotations

from typing import Any

from livereindex.models import Document
from livereindex.producer import default_payload
from livereindex.storage import InMemorySearchStore

INDEX_A = "index-a"
INDEX_B = "index-b"


def make_documents(start: int, stop: int) -> list[Document]:
    """Documents with ids start..stop-1 and the producer's default payload."""
    return [Document(id=n, payload=default_payload(n)) for n in range(start, stop)]


class RecordingStore(InMemorySearchStore):
    """In-memory store that records (operation, index, id) for every put."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.calls: list[tuple[str, str, int]] = []

    async def put(self, index: str, document_id: int, payload: Any) -> None:
        self.calls.append(("put", index, document_id))
        await super().put(index, document_id, payload)

    def puts_for(self, document_id: int) -> list[str]:
        """Indices written for a document, in call order."""
        return [index for op, index, doc_id in self.calls if op == "put" and doc_id == document_id]


__all__ = [
    "INDEX_A",
    "INDEX_B",
    "RecordingStore",
    "make_documents",
]
