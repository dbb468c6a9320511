"""
Configuration management for the Release Orchestrator.
Handles all environment variables and settings.

Every section is immutable; components receive the config they need at
construction instead of reading process-wide state.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class RegistryConfig:
    """Configuration for the image registry."""
    url: str = field(default_factory=lambda: os.getenv("REGISTRY_URL", ""))
    image_name: str = field(default_factory=lambda: os.getenv("IMAGE_NAME", "app"))
    dockerfile: str = field(default_factory=lambda: os.getenv("DOCKERFILE", "Dockerfile"))
    build_context: str = field(default_factory=lambda: os.getenv("BUILD_CONTEXT", "."))


@dataclass(frozen=True)
class HostConfig:
    """Remote hosts and the ssh channel used to reach them."""
    dev_host: str = field(default_factory=lambda: os.getenv("DEV_HOST", ""))
    prod_host: str = field(default_factory=lambda: os.getenv("PROD_HOST", ""))
    ssh_user: str = field(default_factory=lambda: os.getenv("SSH_USER", "deploy"))
    ssh_port: int = field(default_factory=lambda: _env_int("SSH_PORT", 22))
    ssh_key: Optional[str] = field(default_factory=lambda: os.getenv("SSH_KEY_PATH"))
    remote_dir: str = field(default_factory=lambda: os.getenv("REMOTE_DIR", "/opt/app"))
    connect_timeout: int = field(default_factory=lambda: _env_int("SSH_CONNECT_TIMEOUT", 15))


@dataclass(frozen=True)
class QualityGateConfig:
    """Configuration for the static-analysis quality gate."""
    url: str = field(default_factory=lambda: os.getenv("SONAR_HOST_URL", ""))
    project_key: str = field(default_factory=lambda: os.getenv("SONAR_PROJECT_KEY", ""))
    token: str = field(default_factory=lambda: os.getenv("SONAR_TOKEN", ""))
    analysis_command: str = field(default_factory=lambda: os.getenv("SONAR_ANALYSIS_COMMAND", "sonar-scanner"))
    timeout_seconds: float = field(default_factory=lambda: _env_float("QUALITY_GATE_TIMEOUT", 300))
    poll_interval_seconds: float = field(default_factory=lambda: _env_float("QUALITY_GATE_POLL_INTERVAL", 5))


@dataclass(frozen=True)
class HealthCheckConfig:
    """Health verification policy applied after deploy."""
    path: str = "/health"
    initial_delay_seconds: float = field(default_factory=lambda: _env_float("HEALTH_INITIAL_DELAY", 30))
    max_attempts: int = field(default_factory=lambda: _env_int("HEALTH_MAX_ATTEMPTS", 10))
    interval_seconds: float = field(default_factory=lambda: _env_float("HEALTH_INTERVAL", 10))
    request_timeout: float = 5.0


@dataclass(frozen=True)
class CommandsConfig:
    """External commands for the stages that only shell out."""
    checkout: str = field(default_factory=lambda: os.getenv("CHECKOUT_COMMAND", "git rev-parse HEAD"))
    setup: str = field(default_factory=lambda: os.getenv("SETUP_COMMAND", "pip install -r requirements.txt"))
    lint: str = field(default_factory=lambda: os.getenv("LINT_COMMAND", "flake8 ."))
    test: str = field(default_factory=lambda: os.getenv("TEST_COMMAND", "pytest"))
    security_scan: str = field(
        default_factory=lambda: os.getenv(
            "SECURITY_SCAN_COMMAND",
            "trivy image --exit-code 1 --severity HIGH,CRITICAL {image}",
        )
    )


@dataclass(frozen=True)
class Config:
    """Main configuration container."""
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    hosts: HostConfig = field(default_factory=HostConfig)
    quality_gate: QualityGateConfig = field(default_factory=QualityGateConfig)
    health: HealthCheckConfig = field(default_factory=HealthCheckConfig)
    commands: CommandsConfig = field(default_factory=CommandsConfig)

    # Paths
    workspace_dir: Path = field(default_factory=lambda: Path(os.getenv("WORKSPACE_DIR", ".")))
    compose_dir: Path = field(default_factory=lambda: Path(os.getenv("COMPOSE_DIR", ".")))
    output_dir: Path = field(default_factory=lambda: Path(os.getenv("OUTPUT_DIR", "/tmp/release_reports")))

    # Run settings
    command_timeout_seconds: int = field(default_factory=lambda: _env_int("COMMAND_TIMEOUT", 1800))
    run_timeout_seconds: float = field(default_factory=lambda: _env_float("RUN_TIMEOUT", 3600))
    verbose: bool = field(default_factory=lambda: os.getenv("VERBOSE", "false").lower() == "true")

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.registry.url:
            issues.append("REGISTRY_URL is not set")
        if not self.hosts.dev_host:
            issues.append("DEV_HOST is not set")
        if not self.hosts.prod_host:
            issues.append("PROD_HOST is not set")
        if not self.quality_gate.url or not self.quality_gate.project_key:
            issues.append("SONAR_HOST_URL and SONAR_PROJECT_KEY are required for the quality gate")
        if self.health.max_attempts < 1:
            issues.append("HEALTH_MAX_ATTEMPTS must be at least 1")

        return issues

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls()


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the configuration built from the process environment (CLI entry point only)."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config
