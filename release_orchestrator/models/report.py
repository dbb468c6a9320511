"""
Pipeline report models for the Release Orchestrator.
Final output that summarizes the entire pipeline execution.
"""

from enum import Enum
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime

from .image import ImageReference


class PipelineVerdict(Enum):
    """Overall pipeline status."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class StageOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class Criticality(Enum):
    """Whether a stage's failure halts the run."""
    BLOCKING = "blocking"
    BEST_EFFORT = "best_effort"


@dataclass(frozen=True)
class StageResult:
    """Result of a single pipeline stage."""
    name: str
    outcome: StageOutcome
    criticality: Criticality = Criticality.BLOCKING
    duration_ms: int = 0
    diagnostic: Optional[str] = None

    @property
    def blocking_failure(self) -> bool:
        return self.outcome is StageOutcome.FAILURE and self.criticality is Criticality.BLOCKING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "outcome": self.outcome.value,
            "criticality": self.criticality.value,
            "duration_ms": self.duration_ms,
            "diagnostic": self.diagnostic,
        }


@dataclass
class PipelineReport:
    """
    Complete pipeline execution report.

    Created when a run starts and appended to only by the stage runner.
    Once finalized (after the cleanup stage) it can no longer change.
    """
    run_id: str
    environment: str
    build_id: int

    verdict: PipelineVerdict = PipelineVerdict.PENDING

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    stages: List[StageResult] = field(default_factory=list)

    # Key outputs
    image: Optional[ImageReference] = None
    health_url: Optional[str] = None

    @property
    def finalized(self) -> bool:
        return self.finished_at is not None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        return self.verdict is PipelineVerdict.SUCCESS

    @property
    def exit_code(self) -> int:
        """Process exit code: 0 only for a successful run."""
        return 0 if self.succeeded else 1

    def add_stage_result(self, result: StageResult) -> None:
        """Add a stage result to the report."""
        if self.finalized:
            raise RuntimeError(f"Report {self.run_id} is finalized; cannot add stage {result.name!r}")
        self.stages.append(result)

    def stage(self, name: str) -> Optional[StageResult]:
        """Look up a stage result by name."""
        for result in self.stages:
            if result.name == name:
                return result
        return None

    def failed_stage(self) -> Optional[StageResult]:
        """The blocking stage that ended the run, if any."""
        for result in self.stages:
            if result.blocking_failure:
                return result
        return None

    def finalize(self, finished_at: datetime = None) -> "PipelineReport":
        """Compute the verdict and freeze the report."""
        if self.finalized:
            raise RuntimeError(f"Report {self.run_id} is already finalized")
        self.verdict = (
            PipelineVerdict.FAILURE
            if any(result.blocking_failure for result in self.stages)
            else PipelineVerdict.SUCCESS
        )
        self.finished_at = finished_at or datetime.now()
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to full dictionary."""
        return {
            "run_id": self.run_id,
            "environment": self.environment,
            "build_id": self.build_id,
            "verdict": self.verdict.value,
            "exit_code": self.exit_code,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "image": self.image.to_dict() if self.image else None,
            "health_url": self.health_url,
            "stages": [result.to_dict() for result in self.stages],
        }

    def to_markdown(self) -> str:
        """Generate a markdown report."""
        lines = [
            f"# Release Report: {self.environment} build {self.build_id}",
            "",
            f"**Run ID:** `{self.run_id}`",
            f"**Verdict:** {self.verdict.value.upper()}",
            f"**Duration:** {self.duration_seconds:.2f} seconds",
            "",
        ]

        if self.image:
            lines.extend([
                "## Image",
                f"- `{self.image.build_image}`",
                f"- `{self.image.latest_image}`",
            ])
            if self.image.digest:
                lines.append(f"- Digest: `{self.image.digest}`")
            lines.append("")

        lines.extend([
            "## Stages",
            "",
            "| Stage | Outcome | Criticality | Duration | Diagnostic |",
            "|---|---|---|---|---|",
        ])

        for result in self.stages:
            lines.append(
                f"| {result.name} | {result.outcome.value} | {result.criticality.value} "
                f"| {result.duration_ms} ms | {result.diagnostic or ''} |"
            )

        return "\n".join(lines)
