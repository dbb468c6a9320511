"""
Deployment request models for the Release Orchestrator.
"""

from enum import Enum
from dataclasses import dataclass

from ..errors import ConfigurationError


class Environment(Enum):
    """Supported deployment targets."""
    DEV = "dev"
    PROD = "prod"

    @classmethod
    def parse(cls, value: "str | Environment") -> "Environment":
        """
        Convert user input into an Environment.

        Raises:
            ConfigurationError: If the value names no supported environment
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = ", ".join(e.value for e in cls)
            raise ConfigurationError(
                f"Unsupported environment {value!r} (expected one of: {supported})"
            ) from None


@dataclass(frozen=True)
class DeploymentRequest:
    """
    What the invoker asked for. Immutable once the pipeline starts.

    Validation happens here so a bad request is rejected before any stage runs.
    """
    environment: Environment
    build_id: int
    skip_tests: bool = False

    def __post_init__(self):
        object.__setattr__(self, "environment", Environment.parse(self.environment))

        if isinstance(self.build_id, bool) or not isinstance(self.build_id, int):
            raise ConfigurationError(f"build_id must be an integer, got {self.build_id!r}")
        if self.build_id < 0:
            raise ConfigurationError(f"build_id must be non-negative, got {self.build_id}")

    def to_dict(self) -> dict:
        return {
            "environment": self.environment.value,
            "build_id": self.build_id,
            "skip_tests": self.skip_tests,
        }
