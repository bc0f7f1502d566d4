"""Unit tests for settings and component configuration."""

import pytest
from pydantic import ValidationError

from livereindex.config import (
    DEFAULT_ELASTICSEARCH_URL,
    PipelineConfig,
    ReindexSettings,
    RunbookConfig,
)


class TestReindexSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LIVEREINDEX_ELASTICSEARCH_URL", raising=False)

        settings = ReindexSettings(_env_file=None)

        assert settings.elasticsearch_url == DEFAULT_ELASTICSEARCH_URL
        assert settings.workers == 4
        assert settings.write_deadline_seconds == 5.0

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIVEREINDEX_ELASTICSEARCH_URL", "http://es:9200")
        monkeypatch.setenv("LIVEREINDEX_WORKERS", "8")
        monkeypatch.setenv("LIVEREINDEX_ENABLE_TRACING", "false")

        settings = ReindexSettings(_env_file=None)

        assert settings.elasticsearch_url == "http://es:9200"
        assert settings.workers == 8
        assert settings.enable_tracing is False

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValidationError):
            ReindexSettings(_env_file=None, workers=0)

    def test_derived_configs(self) -> None:
        settings = ReindexSettings(
            _env_file=None,
            workers=3,
            write_deadline_seconds=2.5,
            settle_seconds=0.5,
            convergence_timeout_seconds=30,
            observer_interval_seconds=0.25,
        )

        pipeline = settings.pipeline_config()
        runbook = settings.runbook_config()

        assert pipeline == PipelineConfig(workers=3, write_deadline=2.5)
        assert pipeline.queue_capacity == 6
        assert runbook.settle_seconds == 0.5
        assert runbook.convergence_timeout == 30
        assert runbook.poll_interval == 0.25


class TestPipelineConfig:
    def test_queue_capacity_is_twice_workers(self) -> None:
        assert PipelineConfig(workers=5).queue_capacity == 10

    def test_rejects_bad_values(self) -> None:
        with pytest.raises(ValueError):
            PipelineConfig(workers=0)
        with pytest.raises(ValueError):
            PipelineConfig(write_deadline=0)


class TestRunbookConfig:
    def test_rejects_negative_settle(self) -> None:
        with pytest.raises(ValueError, match="settle_seconds"):
            RunbookConfig(settle_seconds=-1)

    def test_zero_settle_allowed(self) -> None:
        assert RunbookConfig(settle_seconds=0).settle_seconds == 0
