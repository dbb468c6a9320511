"""Tests for the QualityGate and SecurityScanner gates."""

from dataclasses import replace

import httpx
import pytest

from release_orchestrator.core.quality_gate import GateVerdict, QualityGate
from release_orchestrator.core.security_scan import SecurityScanner
from release_orchestrator.errors import GateFailure, GateTimeout, SecurityScanFailure
from release_orchestrator.models.image import ImageReference
from release_orchestrator.models.request import Environment


def status_sequence(*statuses):
    """Build a MockTransport that answers each poll with the next status."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        status = statuses[min(len(calls), len(statuses)) - 1]
        if isinstance(status, Exception):
            raise status
        if isinstance(status, int):
            return httpx.Response(status)
        return httpx.Response(200, json={"projectStatus": {"status": status}})

    return httpx.MockTransport(handler), calls


def make_gate(config, transport, fake_clock, runner=None):
    return QualityGate(
        config.quality_gate,
        runner=runner,
        client_factory=lambda: httpx.AsyncClient(base_url="http://sonar.test", transport=transport),
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )


class TestQualityGateWait:

    @pytest.mark.asyncio
    async def test_passes_on_ok(self, config, fake_clock):
        transport, calls = status_sequence("OK")
        gate = make_gate(config, transport, fake_clock)

        assert await gate.wait() is GateVerdict.PASSED
        assert len(calls) == 1
        assert calls[0].url.params["projectKey"] == "shop"
        assert calls[0].url.path == "/api/qualitygates/project_status"

    @pytest.mark.asyncio
    async def test_fails_on_error(self, config, fake_clock):
        transport, _ = status_sequence("NONE", "ERROR")
        gate = make_gate(config, transport, fake_clock)

        assert await gate.wait() is GateVerdict.FAILED
        assert fake_clock.sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_times_out_without_verdict(self, config, fake_clock):
        transport, calls = status_sequence("NONE")
        gate = make_gate(config, transport, fake_clock)

        assert await gate.wait(timeout=1) is GateVerdict.TIMED_OUT
        assert len(calls) == 3
        assert sum(fake_clock.sleeps) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_last_sleep_is_clipped_to_budget(self, config, fake_clock):
        transport, _ = status_sequence("NONE")
        gate = make_gate(config, transport, fake_clock)

        await gate.wait(timeout=0.7)

        assert fake_clock.sleeps[0] == 0.5
        assert fake_clock.sleeps[1] == pytest.approx(0.2)
        assert sum(fake_clock.sleeps) == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_transport_errors_are_not_verdicts(self, config, fake_clock):
        transport, calls = status_sequence(httpx.ConnectError("refused"), 503, "OK")
        gate = make_gate(config, transport, fake_clock)

        assert await gate.wait(timeout=5) is GateVerdict.PASSED
        assert len(calls) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"projectStatus": None},
        {"projectStatus": "OK"},
        ["OK"],
        "OK",
    ])
    async def test_malformed_body_is_not_a_verdict(self, config, fake_clock, body):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        gate = make_gate(config, transport, fake_clock)

        assert await gate.wait(timeout=1) is GateVerdict.TIMED_OUT

    @pytest.mark.asyncio
    async def test_enforce_malformed_body_is_unreachable(self, config, fake_clock):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"projectStatus": None}))
        gate = make_gate(config, transport, fake_clock)

        with pytest.raises(GateTimeout, match="gate unreachable"):
            await gate.enforce()


class TestQualityGateEnforce:

    @pytest.mark.asyncio
    async def test_enforce_pass(self, config, fake_clock):
        transport, _ = status_sequence("OK")
        gate = make_gate(config, transport, fake_clock)

        assert await gate.enforce() == "quality gate passed"

    @pytest.mark.asyncio
    async def test_enforce_rejected(self, config, fake_clock):
        transport, _ = status_sequence("ERROR")
        gate = make_gate(config, transport, fake_clock)

        with pytest.raises(GateFailure, match="gate rejected"):
            await gate.enforce()

    @pytest.mark.asyncio
    async def test_enforce_unreachable(self, config, fake_clock):
        transport, _ = status_sequence(httpx.ConnectError("refused"))
        gate = make_gate(config, transport, fake_clock)

        with pytest.raises(GateTimeout, match="gate unreachable"):
            await gate.enforce()

    @pytest.mark.asyncio
    async def test_analysis_command_runs_first(self, config, fake_clock, fake_process):
        gate_config = replace(config.quality_gate, analysis_command="sonar-scanner -Dsonar.projectKey=shop")
        transport, _ = status_sequence("OK")
        gate = QualityGate(
            gate_config,
            runner=fake_process,
            client_factory=lambda: httpx.AsyncClient(base_url="http://sonar.test", transport=transport),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )

        await gate.enforce()

        assert fake_process.commands == ["sonar-scanner -Dsonar.projectKey=shop"]

    @pytest.mark.asyncio
    async def test_analysis_failure_is_gate_failure(self, config, fake_clock, fake_process):
        gate_config = replace(config.quality_gate, analysis_command="sonar-scanner")
        fake_process.on("sonar-scanner", return_code=2, stderr="not authorized")
        transport, calls = status_sequence("OK")
        gate = QualityGate(
            gate_config,
            runner=fake_process,
            client_factory=lambda: httpx.AsyncClient(base_url="http://sonar.test", transport=transport),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )

        with pytest.raises(GateFailure, match="static analysis"):
            await gate.enforce()
        assert calls == []


class TestSecurityScanner:

    @pytest.fixture
    def ref(self):
        return ImageReference.for_build("registry.example.com", "shop", Environment.PROD, 7)

    @pytest.mark.asyncio
    async def test_scan_passes(self, fake_process, config, ref):
        scanner = SecurityScanner(fake_process, config.commands.security_scan)

        assert await scanner.scan(ref) == "security scan passed"
        assert fake_process.commands == [
            "trivy image --exit-code 1 --severity HIGH,CRITICAL registry.example.com/shop:prod-7"
        ]

    @pytest.mark.asyncio
    async def test_findings_reject_image(self, fake_process, config, ref):
        fake_process.on("trivy", return_code=1, stdout="CVE-2024-0001 CRITICAL")
        scanner = SecurityScanner(fake_process, config.commands.security_scan)

        with pytest.raises(SecurityScanFailure, match="CVE-2024-0001"):
            await scanner.scan(ref)
