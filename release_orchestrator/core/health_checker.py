"""
Health Checker - decides whether the freshly deployed service serves traffic.

Provides:
- Grace period before the first probe
- Bounded number of probes at a fixed interval
- Early exit on the first healthy response
- Injectable probe, sleep and clock for tests
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .logger import get_logger
from ..models.environment import EnvironmentProfile


class HealthVerdict(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ProbeOutcome(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"


@dataclass(frozen=True)
class HealthProbeAttempt:
    """One probe; lives only as long as the check that made it."""
    attempt_index: int
    timestamp: datetime
    outcome: ProbeOutcome
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_index": self.attempt_index,
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome.value,
            "status_code": self.status_code,
            "error": self.error,
        }


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    verdict: HealthVerdict
    url: str = ""
    checks_performed: int = 0
    attempts: List[HealthProbeAttempt] = field(default_factory=list)
    last_error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.verdict is HealthVerdict.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "url": self.url,
            "checks_performed": self.checks_performed,
            "last_error": self.last_error,
        }


# A probe returns the HTTP status code or raises on transport errors
Probe = Callable[[str], Awaitable[int]]


class HealthChecker:
    """
    HTTP health check with a bounded number of attempts.

    States: waiting (initial delay) -> probing(1..max_attempts) -> healthy | unhealthy.
    Transport errors and non-2xx responses both count as a failed attempt.
    Cancelling the calling task (e.g. by the run deadline) interrupts any
    pending sleep immediately.

    Usage:
        checker = HealthChecker()
        result = await checker.check(profile, max_attempts=10, interval_seconds=10)
        if result.healthy:
            print("Deployment verified!")
    """

    def __init__(
        self,
        probe: Probe = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        request_timeout: float = 5.0,
    ):
        """
        Initialize health checker.

        Args:
            probe: Callable performing one GET; defaults to httpx
            sleep: Suspension used for the delay and between attempts
            clock: Wall clock used to timestamp attempts
            request_timeout: HTTP request timeout in seconds
        """
        self.probe = probe or self._http_probe
        self.sleep = sleep
        self.clock = clock
        self.request_timeout = request_timeout
        self.logger = get_logger("HealthChecker")

    async def _http_probe(self, url: str) -> int:
        async with httpx.AsyncClient(timeout=self.request_timeout) as client:
            response = await client.get(url)
            return response.status_code

    async def check(
        self,
        profile: EnvironmentProfile,
        max_attempts: int = 10,
        interval_seconds: float = 10,
        initial_delay_seconds: float = 30,
        path: str = "/health",
    ) -> HealthCheckResult:
        """
        Probe the environment's health endpoint until it answers or attempts run out.

        Args:
            profile: Environment whose host and port are probed
            max_attempts: Maximum number of probes (at least 1)
            interval_seconds: Wait between two probes
            initial_delay_seconds: Grace period before the first probe
            path: Health endpoint path

        Returns:
            HealthCheckResult with verdict HEALTHY or UNHEALTHY
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        url = profile.health_url(path)
        result = HealthCheckResult(verdict=HealthVerdict.UNHEALTHY, url=url)

        if initial_delay_seconds > 0:
            self.logger.info("waiting before first probe", url=url, delay=initial_delay_seconds)
            await self.sleep(initial_delay_seconds)

        for attempt_index in range(1, max_attempts + 1):
            attempt = await self._attempt(url, attempt_index)
            result.attempts.append(attempt)
            result.checks_performed = attempt_index

            if attempt.outcome is ProbeOutcome.HEALTHY:
                result.verdict = HealthVerdict.HEALTHY
                self.logger.info("health check passed", url=url, attempt=attempt_index)
                return result

            result.last_error = attempt.error or f"status {attempt.status_code}"
            self.logger.warning(
                "health probe failed",
                url=url,
                attempt=attempt_index,
                max_attempts=max_attempts,
                error=result.last_error,
            )

            if attempt_index < max_attempts:
                await self.sleep(interval_seconds)

        self.logger.error("health check exhausted", url=url, attempts=max_attempts)
        return result

    async def _attempt(self, url: str, attempt_index: int) -> HealthProbeAttempt:
        timestamp = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        try:
            status_code = await self.probe(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return HealthProbeAttempt(
                attempt_index=attempt_index,
                timestamp=timestamp,
                outcome=ProbeOutcome.ERROR,
                error=f"{type(e).__name__}: {e}",
            )
        except OSError as e:
            return HealthProbeAttempt(
                attempt_index=attempt_index,
                timestamp=timestamp,
                outcome=ProbeOutcome.ERROR,
                error=str(e),
            )

        outcome = ProbeOutcome.HEALTHY if 200 <= status_code < 300 else ProbeOutcome.UNHEALTHY
        return HealthProbeAttempt(
            attempt_index=attempt_index,
            timestamp=timestamp,
            outcome=outcome,
            status_code=status_code,
        )
