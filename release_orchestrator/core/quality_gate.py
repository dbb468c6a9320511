"""
Quality Gate - bounded wait on the static-analysis verdict.

Polls a SonarQube-compatible project status endpoint until it reports a
terminal status or the time budget runs out.
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from .executor import ExternalProcess
from .logger import PipelineLogger
from ..config import QualityGateConfig
from ..errors import GateFailure, GateTimeout


class GateVerdict(Enum):
    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class QualityGate:
    """
    External pass/fail/timeout judgment that must clear before publishing.

    Usage:
        gate = QualityGate(config.quality_gate)
        verdict = await gate.wait(timeout=300)
    """

    STATUS_PATH = "/api/qualitygates/project_status"

    def __init__(
        self,
        config: QualityGateConfig,
        runner: ExternalProcess = None,
        client_factory: Callable[[], httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.runner = runner
        self.client_factory = client_factory or self._default_client
        self.sleep = sleep
        self.clock = clock
        self.logger = PipelineLogger("QualityGate")

    def _default_client(self) -> httpx.AsyncClient:
        auth = (self.config.token, "") if self.config.token else None
        return httpx.AsyncClient(base_url=self.config.url, auth=auth, timeout=10.0)

    async def analyze(self) -> None:
        """
        Run the configured analysis command, if any.

        Raises:
            GateFailure: If the analysis command fails
        """
        if not self.config.analysis_command or self.runner is None:
            return
        result = await self.runner.run(self.config.analysis_command)
        if not result.success:
            raise GateFailure(f"static analysis did not complete ({result.summary()})")

    async def wait(self, timeout: Optional[float] = None) -> GateVerdict:
        """
        Wait for the gate to report a verdict.

        Transport errors and non-terminal statuses are treated as "not yet";
        only the time budget ends the wait without a verdict.

        Args:
            timeout: Seconds to wait (defaults to the configured budget)

        Returns:
            GateVerdict
        """
        timeout = self.config.timeout_seconds if timeout is None else timeout
        deadline = self.clock() + timeout
        polls = 0

        async with self.client_factory() as client:
            while True:
                polls += 1
                status = await self._poll(client)

                if status == "OK":
                    self.logger.success(f"Quality gate passed after {polls} poll(s)")
                    return GateVerdict.PASSED
                if status == "ERROR":
                    self.logger.error("Quality gate rejected the analysis")
                    return GateVerdict.FAILED

                remaining = deadline - self.clock()
                if remaining <= 0:
                    self.logger.error(f"Quality gate gave no verdict within {timeout}s")
                    return GateVerdict.TIMED_OUT

                await self.sleep(min(self.config.poll_interval_seconds, remaining))

    async def enforce(self, timeout: Optional[float] = None) -> str:
        """
        Analyze, wait and raise on anything but a pass.

        Raises:
            GateFailure: The gate rejected the analysis ("gate rejected")
            GateTimeout: No verdict within the budget ("gate unreachable")
        """
        await self.analyze()
        verdict = await self.wait(timeout)
        if verdict is GateVerdict.FAILED:
            raise GateFailure("gate rejected: quality gate status is ERROR")
        if verdict is GateVerdict.TIMED_OUT:
            raise GateTimeout("gate unreachable: no quality gate verdict before timeout")
        return "quality gate passed"

    async def _poll(self, client: httpx.AsyncClient) -> Optional[str]:
        try:
            response = await client.get(
                self.STATUS_PATH, params={"projectKey": self.config.project_key}
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.debug("quality gate poll failed", error=str(e))
            return None

        project_status = body.get("projectStatus") if isinstance(body, dict) else None
        if not isinstance(project_status, dict):
            self.logger.debug("quality gate response has no projectStatus object")
            return None
        return project_status.get("status")
