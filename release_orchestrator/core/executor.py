"""
Command execution for the Release Orchestrator.

Every external tool the pipeline drives (git, docker, trivy, ssh, scp, ...)
goes through the narrow ExternalProcess capability so components can be
exercised with a fake runner.
SECURITY: Commands are checked for injection before they reach the shell.
"""

import asyncio
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from .logger import PipelineLogger
from .security import InputValidator, SecretsMasker, SecurityError


@dataclass
class CommandResult:
    """Exit code and captured output of one external command."""
    command: str
    return_code: int
    stdout: str
    stderr: str
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.return_code == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for pattern matching on either."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)

    def summary(self, limit: int = 300) -> str:
        """Short masked description of a failure, suitable for a stage diagnostic."""
        tail = SecretsMasker.mask_secrets(self.stderr.strip() or self.stdout.strip())
        if len(tail) > limit:
            tail = "..." + tail[-limit:]
        return f"exit code {self.return_code}: {tail}" if tail else f"exit code {self.return_code}"


class ExternalProcess(Protocol):
    """Anything that can run a command and report exit code and output."""

    async def run(
        self,
        command: str,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        ...


class CommandExecutor:
    """
    Runs shell commands in the workspace.

    Never raises for a failing command: a rejected, unstartable or timed-out
    command comes back as a CommandResult with return code -1.
    """

    FAILED_TO_RUN = -1

    def __init__(
        self,
        working_dir: Path = None,
        logger: PipelineLogger = None,
        allowed_commands: List[str] = None,
        validate_commands: bool = True,
        default_timeout: float = 1800,
    ):
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.logger = logger or PipelineLogger("CommandExecutor")
        self.allowed_commands = allowed_commands
        self.validate_commands = validate_commands
        self.default_timeout = default_timeout

    async def run(
        self,
        command: str,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """
        Run ``command`` and wait for it, at most ``timeout`` seconds.

        Args:
            command: Shell command line
            timeout: Seconds before the child is killed (defaults to default_timeout)
            env: Variables added to the inherited environment
        """
        timeout = timeout or self.default_timeout
        masked = SecretsMasker.mask_secrets(command)

        if self.validate_commands:
            try:
                InputValidator.validate_command(command, self.allowed_commands)
            except SecurityError as e:
                self.logger.error(f"Refusing to run command: {e}", command=masked)
                return self._not_run(command, f"Security validation failed: {e}")

        self.logger.debug("executing", command=masked, timeout=timeout)
        started = time.monotonic()
        try:
            return_code, stdout, stderr = await self._spawn(command, timeout, {**os.environ, **(env or {})})
        except asyncio.TimeoutError:
            self.logger.error(f"Command timed out after {timeout}s", command=masked)
            return self._not_run(command, f"Command timed out after {timeout} seconds", started)
        except OSError as e:
            self.logger.error(f"Could not start command: {e}", exc=e, command=masked)
            return self._not_run(command, str(e), started)

        result = CommandResult(
            command=command,
            return_code=return_code,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            duration_seconds=time.monotonic() - started,
        )
        if result.success:
            self.logger.debug(f"Command succeeded in {result.duration_seconds:.2f}s", command=masked)
        else:
            self.logger.warning(f"Command exited with {result.return_code}", command=masked)
        return result

    async def _spawn(self, command: str, timeout: float, env: Dict[str, str]) -> Tuple[int, bytes, bytes]:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.working_dir,
            env=env,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            # Run deadline or command timeout: do not leave the child behind
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise
        return process.returncode, stdout or b"", stderr or b""

    def _not_run(self, command: str, reason: str, started: float = None) -> CommandResult:
        duration = time.monotonic() - started if started is not None else 0.0
        return CommandResult(
            command=command,
            return_code=self.FAILED_TO_RUN,
            stdout="",
            stderr=reason,
            duration_seconds=duration,
        )
