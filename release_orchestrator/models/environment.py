"""Runtime parameters derived from a deployment target."""

from dataclasses import dataclass
from pathlib import Path

from .request import Environment


@dataclass(frozen=True)
class EnvironmentProfile:
    """Read-only for the duration of a run."""
    environment: Environment
    host: str
    port: int
    compose_file: Path
    tag_suffix: str

    def health_url(self, path: str = "/health") -> str:
        return f"http://{self.host}:{self.port}/{path.lstrip('/')}"

    def to_dict(self) -> dict:
        return {
            "environment": self.environment.value,
            "host": self.host,
            "port": self.port,
            "compose_file": str(self.compose_file),
            "tag_suffix": self.tag_suffix,
        }
