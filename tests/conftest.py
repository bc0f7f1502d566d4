"""
Shared pytest fixtures for the livereindex tests.

This module provides:
- Storage fixtures (store, recording_store)
- Routing fixtures (routing)
- Component fixtures (pipeline, orchestrator, observer)
- Observability fixtures (mock_tracer, metric_reader)

All fixtures are function scoped so every test starts from SINGLE(index-a).
"""

from __future__ import annotations

from typing import Any

import pytest

import livereindex.observability.metrics as metrics_module
from livereindex.config import PipelineConfig
from livereindex.observability import MockTracer, reset_meter
from livereindex.observer import ProgressObserver
from livereindex.orchestrator import MigrationOrchestrator
from livereindex.pipeline import IngestionPipeline
from livereindex.routing import RoutingState
from livereindex.storage import InMemorySearchStore
from tests.fixtures import INDEX_A, RecordingStore

# ============================================================================
# OpenTelemetry SDK Detection
# ============================================================================

OTEL_METRICS_AVAILABLE = False
try:
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import InMemoryMetricReader

    OTEL_METRICS_AVAILABLE = True
except ImportError:
    pass


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemorySearchStore:
    """Provide an empty in-memory search store without tracing."""
    return InMemorySearchStore(enable_tracing=False)


@pytest.fixture
def recording_store() -> RecordingStore:
    """Provide an in-memory store that records the order of engine calls."""
    return RecordingStore(enable_tracing=False)


@pytest.fixture
def routing() -> RoutingState:
    """Provide routing in the SINGLE(index-a) state."""
    return RoutingState.single(INDEX_A)


@pytest.fixture
def pipeline(store: InMemorySearchStore, routing: RoutingState) -> IngestionPipeline:
    """Provide a four-worker pipeline over the shared store and routing."""
    return IngestionPipeline(
        store,
        routing,
        PipelineConfig(workers=4, write_deadline=1.0),
        enable_tracing=False,
    )


@pytest.fixture
def orchestrator(store: InMemorySearchStore, routing: RoutingState) -> MigrationOrchestrator:
    return MigrationOrchestrator(store, routing, enable_tracing=False)


@pytest.fixture
def observer(store: InMemorySearchStore) -> ProgressObserver:
    return ProgressObserver(store, enable_tracing=False)


# ============================================================================
# Observability Fixtures
# ============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def metric_reader() -> Any:
    """
    Provide an InMemoryMetricReader for testing metrics.

    Creates a fresh metric reader and meter provider for each test and
    installs its meter as the cached livereindex meter. The global meter
    provider can only be set once per process, so it is left untouched.

    Yields:
        InMemoryMetricReader: Reader for inspecting collected metrics.
    """
    if not OTEL_METRICS_AVAILABLE:
        pytest.skip("opentelemetry-sdk not installed")

    reader = InMemoryMetricReader()
    provider = MeterProvider(metric_readers=[reader])

    metrics_module._meter = provider.get_meter("livereindex")

    yield reader

    reset_meter()
    provider.shutdown()
