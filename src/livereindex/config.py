"""
Configuration for livereindex.

Process-level settings are loaded once at startup from the environment
(prefix ``LIVEREINDEX_``) or a ``.env`` file. Component tuning lives in small
frozen dataclasses that can be derived from the settings or built directly
in tests.

Example:
    >>> from livereindex.config import ReindexSettings
    >>>
    >>> settings = ReindexSettings(elasticsearch_url="http://es:9200", workers=8)
    >>> settings.pipeline_config().queue_capacity
    16
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ELASTICSEARCH_URL = "http://localhost:9200"
DEFAULT_INDEX = "index-a"


class ReindexSettings(BaseSettings):
    """Process settings, read once at startup."""

    model_config = SettingsConfigDict(
        env_prefix="LIVEREINDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Storage engine
    elasticsearch_url: str = Field(
        default=DEFAULT_ELASTICSEARCH_URL,
        description="Single endpoint of the search engine, configured once per process.",
    )
    request_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Transport-level timeout for each engine request, in seconds.",
    )

    # --- Routing
    initial_index: str = Field(
        default=DEFAULT_INDEX,
        min_length=1,
        description="Index used for read and primary when no routing variables are set.",
    )

    # --- Ingestion
    workers: int = Field(default=4, ge=1, description="Size of the ingestion worker pool.")
    write_deadline_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Per-document deadline covering the primary and secondary writes.",
    )

    # --- Observation and cutover pacing
    observer_interval_seconds: float = Field(default=1.0, gt=0)
    settle_seconds: float = Field(
        default=6.0,
        ge=0,
        description="Pause between cutover steps so in-flight writes observe the new routing.",
    )
    convergence_timeout_seconds: float = Field(default=120.0, gt=0)

    # --- Observability
    enable_tracing: bool = Field(default=True)

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            workers=self.workers,
            write_deadline=self.write_deadline_seconds,
        )

    def runbook_config(self) -> RunbookConfig:
        return RunbookConfig(
            settle_seconds=self.settle_seconds,
            convergence_timeout=self.convergence_timeout_seconds,
            poll_interval=self.observer_interval_seconds,
        )


@dataclass(frozen=True)
class PipelineConfig:
    """
    Tuning for the ingestion worker pool.

    Attributes:
        workers: Number of concurrent workers.
        write_deadline: Seconds allowed for one document's writes.
    """

    workers: int = 4
    write_deadline: float = 5.0

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.write_deadline <= 0:
            raise ValueError(f"write_deadline must be > 0, got {self.write_deadline}")

    @property
    def queue_capacity(self) -> int:
        """Bounded queue size: two slots per worker."""
        return 2 * self.workers


@dataclass(frozen=True)
class RunbookConfig:
    """
    Pacing for the cutover runbook.

    Attributes:
        settle_seconds: Sleep after each routing change.
        convergence_timeout: Maximum wait for the copy and for convergence.
        poll_interval: Interval between copy-status and convergence polls.
        retire_source: Whether the runbook deletes the source index at the end.
    """

    settle_seconds: float = 6.0
    convergence_timeout: float = 120.0
    poll_interval: float = 1.0
    retire_source: bool = True

    def __post_init__(self) -> None:
        if self.settle_seconds < 0:
            raise ValueError(f"settle_seconds must be >= 0, got {self.settle_seconds}")
        if self.convergence_timeout <= 0:
            raise ValueError(
                f"convergence_timeout must be > 0, got {self.convergence_timeout}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")


__all__ = [
    "DEFAULT_ELASTICSEARCH_URL",
    "DEFAULT_INDEX",
    "ReindexSettings",
    "PipelineConfig",
    "RunbookConfig",
]
