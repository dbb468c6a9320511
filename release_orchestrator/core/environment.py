"""
Environment Resolver - maps a deployment target to its runtime parameters.
"""

from pathlib import Path
from typing import Dict, Tuple

from ..config import Config
from ..models.environment import EnvironmentProfile
from ..models.request import Environment


class EnvironmentResolver:
    """
    Pure mapping from Environment to EnvironmentProfile.

    Ports and compose suffixes are fixed per environment; host names come
    from the injected configuration.
    """

    # environment -> (port, compose/tag suffix)
    PROFILE_TABLE: Dict[Environment, Tuple[int, str]] = {
        Environment.DEV: (8000, "dev"),
        Environment.PROD: (80, "prod"),
    }

    def __init__(self, config: Config):
        self.hosts = {
            Environment.DEV: config.hosts.dev_host,
            Environment.PROD: config.hosts.prod_host,
        }
        # Relative compose directories live in the workspace, where commands run
        self.compose_dir = (Path(config.workspace_dir) / config.compose_dir).absolute()

    def resolve(self, environment: Environment) -> EnvironmentProfile:
        port, suffix = self.PROFILE_TABLE[environment]
        return EnvironmentProfile(
            environment=environment,
            host=self.hosts[environment],
            port=port,
            compose_file=self.compose_dir / f"docker-compose.{suffix}.yml",
            tag_suffix=suffix,
        )
