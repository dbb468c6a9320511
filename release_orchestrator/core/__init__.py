"""Core module initialization."""

from .executor import CommandExecutor, CommandResult, ExternalProcess
from .logger import get_logger, setup_logging, PipelineLogger
from .security import (
    InputValidator,
    SecretsMasker,
    SecurityError,
    mask_secrets,
)
from .environment import EnvironmentResolver
from .stage_runner import StageRunner, StageDescriptor
from .publisher import ArtifactPublisher
from .quality_gate import QualityGate, GateVerdict
from .security_scan import SecurityScanner
from .remote_deployer import RemoteChannel, RemoteDeployer, DeployOutcome
from .health_checker import (
    HealthChecker,
    HealthCheckResult,
    HealthProbeAttempt,
    HealthVerdict,
    ProbeOutcome,
)


__all__ = [
    # Process execution
    "CommandExecutor",
    "CommandResult",
    "ExternalProcess",
    # Logging
    "get_logger",
    "setup_logging",
    "PipelineLogger",
    # Security
    "InputValidator",
    "SecretsMasker",
    "SecurityError",
    "mask_secrets",
    # Pipeline components
    "EnvironmentResolver",
    "StageRunner",
    "StageDescriptor",
    "ArtifactPublisher",
    "QualityGate",
    "GateVerdict",
    "SecurityScanner",
    "RemoteChannel",
    "RemoteDeployer",
    "DeployOutcome",
    "HealthChecker",
    "HealthCheckResult",
    "HealthProbeAttempt",
    "HealthVerdict",
    "ProbeOutcome",
]
