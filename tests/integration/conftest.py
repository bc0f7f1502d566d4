"""
Integration test fixtures.

Cutover scenarios run against the in-memory store by default. The
Elasticsearch suite needs a live node at LIVEREINDEX_ELASTICSEARCH_URL and
is skipped otherwise.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from livereindex.config import ReindexSettings
from livereindex.storage import ElasticsearchStore

# ============================================================================
# Skip Conditions
# ============================================================================

ELASTICSEARCH_URL = os.environ.get("LIVEREINDEX_ELASTICSEARCH_URL")

skip_if_no_elasticsearch = pytest.mark.skipif(
    not ELASTICSEARCH_URL,
    reason="LIVEREINDEX_ELASTICSEARCH_URL not set",
)


# ============================================================================
# Elasticsearch Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def es_store() -> AsyncGenerator[ElasticsearchStore, None]:
    """Provide an ElasticsearchStore against the configured node."""
    store = ElasticsearchStore.from_settings(ReindexSettings(enable_tracing=False))
    if not await store.client.ping():
        await store.close()
        pytest.skip(f"Elasticsearch not reachable at {ELASTICSEARCH_URL}")

    yield store

    await store.close()


@pytest.fixture
def index_names() -> tuple[str, str]:
    """Unique source and target index names for one test."""
    suffix = uuid.uuid4().hex[:8]
    return f"livereindex-test-a-{suffix}", f"livereindex-test-b-{suffix}"
