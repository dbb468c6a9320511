"""
Remote Deployer - materializes the published image on the target host.

Provides:
- One authenticated ssh session per deploy (ControlMaster multiplexing)
- Compose file transfer over the same session
- Idempotent stop / pull / start sequence
- Best-effort pruning of unused images
"""

import re
import shlex
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .executor import CommandResult, ExternalProcess
from .logger import PipelineLogger
from .security import InputValidator, SecurityError
from ..config import HostConfig
from ..errors import ConnectivityFailure, PipelineError, RemoteCommandFailure
from ..models.environment import EnvironmentProfile
from ..models.image import ImageReference


# Outputs of "docker compose down" that mean there was nothing to stop
NOTHING_RUNNING = re.compile(
    r"no such (container|project|service)|no resource found|is not running|no containers to (stop|remove)",
    re.IGNORECASE,
)


@dataclass
class DeployOutcome:
    """Result of a deploy operation."""
    success: bool
    reason: Optional[str] = None
    error: Optional[PipelineError] = None
    steps: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "reason": self.reason,
            "steps": self.steps,
            "warnings": self.warnings,
        }


class RemoteChannel:
    """
    A single authenticated ssh session to one host.

    The master connection is opened once; every command and file transfer
    reuses it through the control socket, and it is torn down on exit.

    Usage:
        async with RemoteChannel(runner, config.hosts, "10.0.0.5") as channel:
            await channel.execute("docker ps")
    """

    def __init__(self, runner: ExternalProcess, hosts: HostConfig, host: str, timeout: float = 600):
        self.runner = runner
        self.hosts = hosts
        self.host = host
        self.timeout = timeout
        self.logger = PipelineLogger("RemoteChannel")
        self._socket_dir: Optional[str] = None

    @property
    def target(self) -> str:
        return f"{self.hosts.ssh_user}@{self.host}" if self.hosts.ssh_user else self.host

    @property
    def control_path(self) -> str:
        return f"{self._socket_dir}/ctl"

    def _options(self, port_flag: str = "-p") -> str:
        options = [
            "-o BatchMode=yes",
            f"-o ConnectTimeout={self.hosts.connect_timeout}",
            f"-o ControlPath={self.control_path}",
            f"{port_flag} {self.hosts.ssh_port}",
        ]
        if self.hosts.ssh_key:
            options.append(f"-i {shlex.quote(self.hosts.ssh_key)}")
        return " ".join(options)

    async def open(self) -> None:
        """
        Establish the master connection.

        Raises:
            ConnectivityFailure: Host unreachable or authentication rejected
        """
        self._socket_dir = tempfile.mkdtemp(prefix="release-ssh-")
        result = await self.runner.run(
            f"ssh -fN -o ControlMaster=yes -o ControlPersist=yes {self._options()} {self.target}",
            timeout=self.hosts.connect_timeout + 30,
        )
        if not result.success:
            self._remove_socket_dir()
            raise ConnectivityFailure(f"cannot open ssh session to {self.target} ({result.summary()})")
        self.logger.info(f"Connected to {self.target}")

    async def execute(self, command: str) -> CommandResult:
        """Run a command on the remote host over the open session."""
        return await self.runner.run(
            f"ssh {self._options()} {self.target} {shlex.quote(command)}",
            timeout=self.timeout,
        )

    async def put(self, local_path: Path, remote_path: str) -> CommandResult:
        """Copy a local file to the remote host over the open session."""
        return await self.runner.run(
            f"scp {self._options(port_flag='-P')} {shlex.quote(str(local_path))} "
            f"{self.target}:{shlex.quote(remote_path)}",
            timeout=self.timeout,
        )

    async def close(self) -> None:
        if self._socket_dir is None:
            return
        result = await self.runner.run(f"ssh -O exit {self._options()} {self.target}", timeout=30)
        if not result.success:
            self.logger.debug("ssh master exit failed", detail=result.summary())
        self._remove_socket_dir()

    def _remove_socket_dir(self) -> None:
        if self._socket_dir is not None:
            shutil.rmtree(self._socket_dir, ignore_errors=True)
            self._socket_dir = None

    async def __aenter__(self) -> "RemoteChannel":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class RemoteDeployer:
    """
    Deploys an image reference to the environment's host with docker compose.

    Re-running deploy for a reference that is already running converges to
    the same state: the stack is stopped and started again.
    """

    REMOTE_COMPOSE_NAME = "docker-compose.yml"

    def __init__(self, runner: ExternalProcess, hosts: HostConfig):
        self.runner = runner
        self.hosts = hosts
        self.logger = PipelineLogger("RemoteDeployer")

    def remote_dir(self, profile: EnvironmentProfile) -> str:
        return f"{self.hosts.remote_dir.rstrip('/')}/{profile.tag_suffix}"

    async def deploy(self, profile: EnvironmentProfile, ref: ImageReference) -> DeployOutcome:
        """
        Transfer the compose file, then stop, pull, start and prune.

        Args:
            profile: Target environment
            ref: Published image reference

        Returns:
            DeployOutcome; on failure ``error`` holds the ConnectivityFailure or
            RemoteCommandFailure that stopped the sequence
        """
        outcome = DeployOutcome(success=False)
        remote_dir = self.remote_dir(profile)
        compose = f"{remote_dir}/{self.REMOTE_COMPOSE_NAME}"
        compose_cmd = f"IMAGE_TAG={ref.build_tag} docker compose -f {shlex.quote(compose)}"

        try:
            try:
                InputValidator.validate_host(profile.host)
            except SecurityError as e:
                raise ConnectivityFailure(str(e)) from e

            if not Path(profile.compose_file).is_file():
                raise RemoteCommandFailure(
                    f"compose file {profile.compose_file} does not exist", step="transfer"
                )

            async with RemoteChannel(self.runner, self.hosts, profile.host) as channel:
                await self._step(channel, outcome, "prepare", f"mkdir -p {shlex.quote(remote_dir)}")
                await self._transfer(channel, outcome, profile.compose_file, compose)
                await self._stop(channel, outcome, compose_cmd)
                await self._step(channel, outcome, "pull", f"{compose_cmd} pull")
                await self._step(channel, outcome, "start", f"{compose_cmd} up -d --remove-orphans")
                await self._prune(channel, outcome)

        except (ConnectivityFailure, RemoteCommandFailure) as e:
            outcome.reason = str(e)
            outcome.error = e
            self.logger.error(f"Deploy to {profile.host} failed: {e}")
            return outcome

        outcome.success = True
        self.logger.success(f"{ref.build_tag} running on {profile.host}")
        return outcome

    async def _step(self, channel: RemoteChannel, outcome: DeployOutcome, step: str, command: str) -> None:
        result = await channel.execute(command)
        if not result.success:
            raise RemoteCommandFailure(f"remote {step} failed ({result.summary()})", step=step)
        outcome.steps.append(step)

    async def _transfer(self, channel: RemoteChannel, outcome: DeployOutcome, local: Path, remote: str) -> None:
        result = await channel.put(local, remote)
        if not result.success:
            raise RemoteCommandFailure(f"compose file transfer failed ({result.summary()})", step="transfer")
        outcome.steps.append("transfer")

    async def _stop(self, channel: RemoteChannel, outcome: DeployOutcome, compose_cmd: str) -> None:
        result = await channel.execute(f"{compose_cmd} down --remove-orphans")
        if not result.success:
            if not NOTHING_RUNNING.search(result.output):
                raise RemoteCommandFailure(f"remote stop failed ({result.summary()})", step="stop")
            self.logger.info("Nothing was running; continuing")
        outcome.steps.append("stop")

    async def _prune(self, channel: RemoteChannel, outcome: DeployOutcome) -> None:
        result = await channel.execute("docker image prune -f")
        if result.success:
            outcome.steps.append("prune")
        else:
            warning = f"prune failed ({result.summary()})"
            outcome.warnings.append(warning)
            self.logger.warning(warning)
