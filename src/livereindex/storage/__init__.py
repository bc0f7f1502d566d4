"""Storage client facade: the narrow interface to the search engine."""

from livereindex.storage.elasticsearch import ElasticsearchStore
from livereindex.storage.in_memory import InjectedFailure, InMemorySearchStore
from livereindex.storage.interface import SearchStore

__all__ = [
    "SearchStore",
    "ElasticsearchStore",
    "InMemorySearchStore",
    "InjectedFailure",
]
