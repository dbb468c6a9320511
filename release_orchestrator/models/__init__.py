"""Data models for the Release Orchestrator."""

from .request import Environment, DeploymentRequest
from .environment import EnvironmentProfile
from .image import ImageReference
from .report import (
    PipelineReport,
    PipelineVerdict,
    StageResult,
    StageOutcome,
    Criticality,
)

__all__ = [
    "Environment",
    "DeploymentRequest",
    "EnvironmentProfile",
    "ImageReference",
    "PipelineReport",
    "PipelineVerdict",
    "StageResult",
    "StageOutcome",
    "Criticality",
]
