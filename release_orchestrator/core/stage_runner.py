"""
Stage Runner - sequential executor for pipeline stages.

Provides:
- Ordered execution with fail-fast on blocking stages
- Best-effort stages whose failure is recorded but tolerated
- An enclosing run deadline that cancels the stage in flight
- A cleanup stage that runs exactly once on every exit path
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .logger import PipelineLogger
from ..errors import BestEffortFailure, PipelineError
from ..models.report import (
    Criticality,
    PipelineReport,
    StageOutcome,
    StageResult,
)
from ..utils.helpers import generate_id


# A stage action returns an optional diagnostic and raises on failure
StageAction = Callable[[], Awaitable[Optional[str]]]


@dataclass(frozen=True)
class StageDescriptor:
    """A named unit of work and how its failure affects the run."""
    name: str
    action: StageAction
    criticality: Criticality = Criticality.BLOCKING
    enabled: bool = True
    skip_reason: Optional[str] = None


class _DeadlineExceeded(Exception):
    pass


class StageRunner:
    """
    Runs stage descriptors in order and produces the PipelineReport.

    Usage:
        runner = StageRunner(run_timeout=3600)
        report = await runner.run(stages, cleanup=cleanup_stage, run_id="run-1")
        sys.exit(report.exit_code)
    """

    DEADLINE_DIAGNOSTIC = "run deadline exceeded"

    def __init__(
        self,
        run_timeout: Optional[float] = None,
        cleanup_timeout: float = 300,
        clock: Callable[[], float] = time.monotonic,
        logger: PipelineLogger = None,
    ):
        """
        Initialize the runner.

        Args:
            run_timeout: Budget in seconds for the main sequence (None = unbounded)
            cleanup_timeout: Budget for the cleanup stage, which ignores the run deadline
            clock: Monotonic clock used for durations and the deadline
            logger: Logger for stage progress
        """
        self.run_timeout = run_timeout
        self.cleanup_timeout = cleanup_timeout
        self.clock = clock
        self.logger = logger or PipelineLogger("StageRunner")

    async def run(
        self,
        stages: Sequence[StageDescriptor],
        cleanup: Optional[StageDescriptor] = None,
        run_id: Optional[str] = None,
        environment: str = "",
        build_id: int = 0,
        outputs: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> PipelineReport:
        """
        Execute the stages and return the finalized report.

        Args:
            stages: Ordered main sequence
            cleanup: Stage executed once after the main sequence, whatever happened
            run_id: Identifier recorded in the report
            environment: Target environment recorded in the report
            build_id: Build identifier recorded in the report
            outputs: Called before finalization; may supply "image" and "health_url"

        Returns:
            The finalized PipelineReport. Cancellation of the calling task is
            re-raised after cleanup has run and the report was finalized.
        """
        report = PipelineReport(
            run_id=run_id or generate_id("run"),
            environment=environment,
            build_id=build_id,
        )
        deadline = self.clock() + self.run_timeout if self.run_timeout is not None else None
        pending: List[StageDescriptor] = list(stages)
        halted_by: Optional[str] = None

        try:
            for index, stage in enumerate(stages, start=1):
                pending.pop(0)

                if halted_by is not None:
                    self._record_skip(report, stage, f"not run: {halted_by} failed")
                    continue

                if not stage.enabled:
                    self._record_skip(report, stage, stage.skip_reason or "disabled")
                    continue

                self.logger.stage(stage.name, index)
                started = self.clock()
                try:
                    result = await self._execute(stage, deadline, started)
                except asyncio.CancelledError:
                    report.add_stage_result(StageResult(
                        name=stage.name,
                        outcome=StageOutcome.FAILURE,
                        criticality=Criticality.BLOCKING,
                        duration_ms=self._elapsed_ms(started),
                        diagnostic="cancelled",
                    ))
                    self.logger.warning(f"{stage.name} cancelled", stage=stage.name)
                    raise
                report.add_stage_result(result)

                if result.blocking_failure:
                    halted_by = stage.name
                    self.logger.error(f"{stage.name} failed: {result.diagnostic}", stage=stage.name)
                elif result.outcome is StageOutcome.FAILURE:
                    self.logger.warning(f"{stage.name} failed (best-effort): {result.diagnostic}", stage=stage.name)
                else:
                    self.logger.success(f"{stage.name} completed", stage=stage.name, duration_ms=result.duration_ms)
        finally:
            # Stages left unrecorded by an interrupted loop are still accounted for
            for stage in pending:
                self._record_skip(report, stage, "not run: pipeline interrupted")

            if cleanup is not None:
                report.add_stage_result(await self._execute_cleanup(cleanup))

            if outputs is not None:
                values = outputs()
                report.image = values.get("image")
                report.health_url = values.get("health_url")

            report.finalize()
            self.logger.info(
                f"Run {report.run_id} finished: {report.verdict.value}",
                verdict=report.verdict.value,
                duration_seconds=report.duration_seconds,
            )

        return report

    async def _execute(self, stage: StageDescriptor, deadline: Optional[float], started: float) -> StageResult:
        """Run one stage and translate its exit into a StageResult."""
        outcome = StageOutcome.SUCCESS
        criticality = stage.criticality
        diagnostic: Optional[str] = None

        try:
            diagnostic = await self._with_deadline(stage.action(), deadline)
        except _DeadlineExceeded:
            # The run is over regardless of the stage's own criticality
            outcome = StageOutcome.FAILURE
            criticality = Criticality.BLOCKING
            diagnostic = self.DEADLINE_DIAGNOSTIC
        except PipelineError as e:
            outcome = StageOutcome.FAILURE
            diagnostic = f"{type(e).__name__}: {e}"
        except Exception as e:
            outcome = StageOutcome.FAILURE
            diagnostic = f"unexpected error: {type(e).__name__}: {e}"
            self.logger.error(f"{stage.name} raised unexpectedly", exc=e, stage=stage.name)

        if outcome is StageOutcome.FAILURE and criticality is Criticality.BEST_EFFORT:
            diagnostic = f"{BestEffortFailure.__name__}: {diagnostic}"

        return StageResult(
            name=stage.name,
            outcome=outcome,
            criticality=criticality,
            duration_ms=self._elapsed_ms(started),
            diagnostic=diagnostic,
        )

    async def _execute_cleanup(self, cleanup: StageDescriptor) -> StageResult:
        """Cleanup never changes the verdict, so it is always recorded as best-effort."""
        self.logger.stage(cleanup.name)
        started = self.clock()
        outcome = StageOutcome.SUCCESS
        diagnostic: Optional[str] = None

        try:
            diagnostic = await asyncio.wait_for(cleanup.action(), timeout=self.cleanup_timeout)
        except asyncio.TimeoutError:
            outcome = StageOutcome.FAILURE
            diagnostic = f"cleanup timed out after {self.cleanup_timeout}s"
        except Exception as e:
            outcome = StageOutcome.FAILURE
            diagnostic = f"{type(e).__name__}: {e}"
            self.logger.error("cleanup failed", exc=e)

        if outcome is StageOutcome.SUCCESS:
            self.logger.success(f"{cleanup.name} completed")

        return StageResult(
            name=cleanup.name,
            outcome=outcome,
            criticality=Criticality.BEST_EFFORT,
            duration_ms=self._elapsed_ms(started),
            diagnostic=diagnostic,
        )

    async def _with_deadline(self, awaitable: Awaitable[Optional[str]], deadline: Optional[float]) -> Optional[str]:
        if deadline is None:
            return await awaitable

        remaining = deadline - self.clock()
        if remaining <= 0:
            # Close the never-awaited coroutine
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise _DeadlineExceeded()

        task = asyncio.ensure_future(awaitable)
        try:
            done, _ = await asyncio.wait({task}, timeout=remaining)
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise

        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise _DeadlineExceeded()

        return task.result()

    def _record_skip(self, report: PipelineReport, stage: StageDescriptor, reason: str) -> None:
        self.logger.skipped(f"{stage.name} skipped ({reason})", stage=stage.name)
        report.add_stage_result(StageResult(
            name=stage.name,
            outcome=StageOutcome.SKIPPED,
            criticality=stage.criticality,
            diagnostic=reason,
        ))

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self.clock() - started) * 1000))
