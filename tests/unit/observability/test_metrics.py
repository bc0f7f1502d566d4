"""
Unit tests for IngestionMetrics.

Local counters are checked without an SDK; emission to OpenTelemetry is
checked through the metric_reader fixture, which is skipped when
opentelemetry-sdk is not installed.
"""

from __future__ import annotations

from typing import Any

import pytest

from livereindex.config import PipelineConfig
from livereindex.models import Document
from livereindex.observability import IngestionMetrics, IngestionMetricSnapshot
from livereindex.pipeline import IngestionPipeline
from livereindex.routing import RoutingState
from livereindex.storage import InMemorySearchStore
from tests.fixtures import INDEX_A, INDEX_B

# =============================================================================
# Helpers
# =============================================================================


def _get_metric_value(metrics_data: Any, metric_name: str) -> float:
    """Sum the data point values of a counter, or 0 if it was never recorded."""
    if not metrics_data or not metrics_data.resource_metrics:
        return 0

    for resource_metric in metrics_data.resource_metrics:
        for scope_metric in resource_metric.scope_metrics:
            for metric in scope_metric.metrics:
                if metric.name == metric_name:
                    return sum(dp.value for dp in metric.data.data_points)
    return 0


def _get_metric_attributes(metrics_data: Any, metric_name: str) -> dict[str, Any]:
    if not metrics_data or not metrics_data.resource_metrics:
        return {}

    for resource_metric in metrics_data.resource_metrics:
        for scope_metric in resource_metric.scope_metrics:
            for metric in scope_metric.metrics:
                if metric.name == metric_name and metric.data.data_points:
                    return dict(metric.data.data_points[0].attributes)
    return {}


# =============================================================================
# Local counters
# =============================================================================


class TestLocalCounters:
    def test_snapshot_starts_empty(self):
        metrics = IngestionMetrics(enable_metrics=False)

        assert metrics.snapshot() == IngestionMetricSnapshot()

    def test_record_ingested(self):
        metrics = IngestionMetrics(enable_metrics=False)

        metrics.record_ingested(dual_write=False, duration_ms=2.0)
        metrics.record_ingested(dual_write=True, duration_ms=3.0)

        snapshot = metrics.snapshot()
        assert snapshot.documents_ingested == 2
        assert snapshot.documents_dual_written == 1
        assert snapshot.total_write_ms == 5.0

    def test_record_write_failure(self):
        metrics = IngestionMetrics(enable_metrics=False)

        metrics.record_write_failure(INDEX_B, "WRITE_FAILED")
        metrics.record_write_failure(INDEX_B, "WRITE_DEADLINE_EXCEEDED")

        assert metrics.snapshot().write_failures == {INDEX_B: 2}

    def test_snapshot_to_dict(self):
        metrics = IngestionMetrics(enable_metrics=False)
        metrics.record_ingested(dual_write=True, duration_ms=1.5)

        assert metrics.snapshot().to_dict() == {
            "documents_ingested": 1,
            "documents_dual_written": 1,
            "write_failures": {},
            "total_write_ms": 1.5,
        }

    def test_enabled_without_sdk_is_safe(self):
        metrics = IngestionMetrics(pipeline_name="orders")

        metrics.record_ingested(dual_write=False, duration_ms=1.0)
        metrics.record_write_failure(INDEX_A, "WRITE_FAILED")

        assert metrics.snapshot().documents_ingested == 1


# =============================================================================
# OpenTelemetry emission
# =============================================================================


class TestEmission:
    def test_counters_are_emitted(self, metric_reader: Any):
        metrics = IngestionMetrics(pipeline_name="orders")

        metrics.record_ingested(dual_write=True, duration_ms=4.0)
        metrics.record_ingested(dual_write=False, duration_ms=4.0)

        data = metric_reader.get_metrics_data()
        assert _get_metric_value(data, "livereindex.documents.ingested") == 2
        assert _get_metric_value(data, "livereindex.documents.dual_written") == 1
        assert _get_metric_attributes(data, "livereindex.documents.ingested") == {
            "pipeline": "orders"
        }

    def test_failures_are_labeled(self, metric_reader: Any):
        metrics = IngestionMetrics(pipeline_name="orders")

        metrics.record_write_failure(INDEX_B, "WRITE_DEADLINE_EXCEEDED")

        data = metric_reader.get_metrics_data()
        assert _get_metric_value(data, "livereindex.writes.failed") == 1
        assert _get_metric_attributes(data, "livereindex.writes.failed") == {
            "pipeline": "orders",
            "index": INDEX_B,
            "error_code": "WRITE_DEADLINE_EXCEEDED",
        }

    @pytest.mark.asyncio
    async def test_pipeline_emits_through_metrics(self, metric_reader: Any):
        store = InMemorySearchStore(enable_tracing=False)
        routing = RoutingState(INDEX_A, INDEX_A, INDEX_B)
        pipeline = IngestionPipeline(
            store,
            routing,
            PipelineConfig(workers=2),
            metrics=IngestionMetrics(pipeline_name="cutover"),
            enable_tracing=False,
        )

        await pipeline.ingest([Document(id=n, payload=f"document {n}") for n in range(3)])

        data = metric_reader.get_metrics_data()
        assert _get_metric_value(data, "livereindex.documents.ingested") == 3
        assert _get_metric_value(data, "livereindex.documents.dual_written") == 3
