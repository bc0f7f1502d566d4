"""
CutoverRunbook - The canonical online cutover from one index to another.

Runs the orchestrator steps in order while ingestion continues elsewhere:

    1. set_secondary(target)                 arm dual-writes
    2. settle                                in-flight writes see the new routing
    3. reindex(source, target)               retried on CopyFailed
    4. wait for the copy, then convergence   gate before any read traffic moves
    5. set_read(target), settle
    6. set_primary(target), settle           secondary still armed with target
    7. set_secondary(None), settle
    8. retire(source)                        refused while still referenced

Routing slots change independently, so a write in flight during a step may
observe a mix of old and new values. The settle periods and the convergence
gate are what make each step safe; nothing here relies on an atomic flip.

There is no automatic rollback. rollback_plan() lists the symmetric sequence
for an operator to run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from livereindex.config import RunbookConfig
from livereindex.exceptions import (
    COPY_RETRY_CONFIG,
    ErrorHandler,
    IndexStillReferenced,
    RetryConfig,
)
from livereindex.models import ConvergenceSample, CopyStatus, MigrationPhase
from livereindex.observer import ProgressObserver
from livereindex.orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class CutoverResult:
    """
    Outcome of a runbook execution.

    Attributes:
        source: Index migrated away from.
        target: Index migrated to.
        copy_status: Final status of the bulk copy.
        convergence: Convergence sample that gated the read switch.
        retired: Whether the source index was deleted.
        steps: Names of completed steps, in order.
        started_at: When the run began.
        completed_at: When the run finished.
    """

    source: str
    target: str
    copy_status: CopyStatus | None = None
    convergence: ConvergenceSample | None = None
    retired: bool = False
    steps: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


class CutoverRunbook:
    """
    Executes a complete cutover.

    Example:
        >>> runbook = CutoverRunbook(orchestrator, observer, RunbookConfig(settle_seconds=6))
        >>> result = await runbook.run("orders-v1", "orders-v2")
        >>> orchestrator.phase
        <MigrationPhase.SINGLE: 'single'>

    Args:
        orchestrator: Orchestrator owning the routing state.
        observer: Observer used for the convergence gate.
        config: Settle and timeout pacing.
        error_handler: Retry driver for the bulk copy.
        copy_retry: Retry policy for the bulk copy.
    """

    def __init__(
        self,
        orchestrator: MigrationOrchestrator,
        observer: ProgressObserver,
        config: RunbookConfig | None = None,
        *,
        error_handler: ErrorHandler | None = None,
        copy_retry: RetryConfig = COPY_RETRY_CONFIG,
    ) -> None:
        self._orchestrator = orchestrator
        self._observer = observer
        self._config = config or RunbookConfig()
        self._error_handler = error_handler or ErrorHandler()
        self._copy_retry = copy_retry

    async def _settle(self) -> None:
        if self._config.settle_seconds:
            await asyncio.sleep(self._config.settle_seconds)

    async def run(self, source: str, target: str) -> CutoverResult:
        """
        Move reads and writes from source to target.

        Args:
            source: Current primary and read index.
            target: Index to migrate to.

        Returns:
            A CutoverResult describing the run.

        Raises:
            CopyFailed: If the bulk copy keeps failing after retries.
            ConvergenceTimeout: If the indices do not converge; reads stay on source.
            IndexStillReferenced: If the source is still referenced at retirement.
            DeleteFailed: If the source cannot be deleted.
        """
        if source == target:
            raise ValueError("source and target must differ")

        orchestrator = self._orchestrator
        routing = orchestrator.routing
        if routing.primary_index != source:
            raise ValueError(
                f"Cutover must start from the primary index {routing.primary_index!r}, "
                f"not {source!r}"
            )

        result = CutoverResult(source=source, target=target)
        logger.info(
            "Starting cutover %s -> %s",
            source,
            target,
            extra={"source_index": source, "dest_index": target},
        )

        orchestrator.set_secondary_index(target)
        result.steps.append("arm_secondary")
        await self._settle()

        task = await self._error_handler.execute_with_retry(
            lambda: orchestrator.reindex(source, target),
            operation_name=f"reindex {source} -> {target}",
            retry_config=self._copy_retry,
        )
        result.steps.append("reindex")

        result.copy_status = await orchestrator.wait_for_copy(
            task,
            timeout=self._config.convergence_timeout,
            interval=self._config.poll_interval,
        )
        result.convergence = await self._observer.wait_for_convergence(
            source,
            target,
            timeout=self._config.convergence_timeout,
            interval=self._config.poll_interval,
        )
        result.steps.append("converged")

        orchestrator.set_read_index(target)
        result.steps.append("switch_read")
        await self._settle()

        orchestrator.set_primary_index(target)
        result.steps.append("switch_primary")
        await self._settle()

        # A worker that read the old primary may still be writing it; it reaches
        # the target through the secondary until this point.
        orchestrator.set_secondary_index(None)
        result.steps.append("disarm_secondary")
        await self._settle()

        if self._config.retire_source:
            referenced_by = orchestrator.references(source)
            if referenced_by:
                raise IndexStillReferenced(source, referenced_by)
            await orchestrator.retire_index(source)
            result.retired = True
            result.steps.append("retire_source")

        result.completed_at = datetime.now(UTC)
        logger.info(
            "Cutover %s -> %s finished in %.1fs (phase %s)",
            source,
            target,
            result.duration_seconds,
            orchestrator.phase.value,
            extra={"source_index": source, "dest_index": target, "steps": result.steps},
        )
        return result

    @staticmethod
    def rollback_plan(source: str, target: str) -> list[str]:
        """
        Describe the steps that move traffic back from target to source.

        Nothing is executed. Reverting is the same sequence with the indices
        swapped; source must not have been retired.
        """
        return [
            f"set_secondary_index({source!r})",
            f"reindex({target!r}, {source!r})",
            f"wait_for_convergence({target!r}, {source!r})",
            f"set_read_index({source!r})",
            f"set_primary_index({source!r})",
            "set_secondary_index(None)",
            f"retire_index({target!r})",
        ]

    @property
    def expected_final_phase(self) -> MigrationPhase:
        if self._config.retire_source:
            return MigrationPhase.SINGLE
        return MigrationPhase.SINGLE_STALE


__all__ = [
    "CutoverResult",
    "CutoverRunbook",
]
