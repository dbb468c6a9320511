"""Shared fakes for the release pipeline tests."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from release_orchestrator.config import (
    CommandsConfig,
    Config,
    HealthCheckConfig,
    HostConfig,
    QualityGateConfig,
    RegistryConfig,
)
from release_orchestrator.core.executor import CommandResult


DIGEST = "sha256:" + "ab" * 32


class FakeProcess:
    """Records commands and answers them from rules; unmatched commands succeed."""

    def __init__(self):
        self.commands: List[str] = []
        self._rules = []

    def on(self, fragment: str, return_code: int = 0, stdout: str = "", stderr: str = "") -> "FakeProcess":
        # Most recently added rule wins
        self._rules.insert(0, (fragment, return_code, stdout, stderr))
        return self

    async def run(self, command: str, timeout: Optional[float] = None, env: Optional[Dict[str, str]] = None) -> CommandResult:
        self.commands.append(command)
        for fragment, return_code, stdout, stderr in self._rules:
            if fragment in command:
                return CommandResult(command, return_code, stdout, stderr)
        return CommandResult(command, 0, "", "")

    def ran(self, fragment: str) -> List[str]:
        return [command for command in self.commands if fragment in command]


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_process():
    process = FakeProcess()
    process.on("docker image inspect", stdout="sha256:localimage\n")
    process.on("docker push", stdout=f"latest: digest: {DIGEST} size: 1570\n")
    return process


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def compose_dir(tmp_path) -> Path:
    for suffix in ("dev", "prod"):
        (tmp_path / f"docker-compose.{suffix}.yml").write_text(
            "services:\n  web:\n    image: registry.example.com/shop:${IMAGE_TAG}\n"
        )
    return tmp_path


@pytest.fixture
def config(compose_dir) -> Config:
    return Config(
        registry=RegistryConfig(
            url="registry.example.com",
            image_name="shop",
            dockerfile="Dockerfile",
            build_context=".",
        ),
        hosts=HostConfig(
            dev_host="dev.example.com",
            prod_host="prod.example.com",
            ssh_user="deploy",
            ssh_port=22,
            ssh_key=None,
            remote_dir="/opt/shop",
            connect_timeout=5,
        ),
        quality_gate=QualityGateConfig(
            url="http://sonar.test",
            project_key="shop",
            token="",
            analysis_command="",
            timeout_seconds=1,
            poll_interval_seconds=0.5,
        ),
        health=HealthCheckConfig(
            initial_delay_seconds=30,
            max_attempts=10,
            interval_seconds=10,
        ),
        commands=CommandsConfig(
            checkout="git rev-parse HEAD",
            setup="pip install -r requirements.txt",
            lint="flake8 .",
            test="pytest",
            security_scan="trivy image --exit-code 1 --severity HIGH,CRITICAL {image}",
        ),
        workspace_dir=compose_dir,
        compose_dir=compose_dir,
        output_dir=compose_dir / "reports",
        command_timeout_seconds=60,
        run_timeout_seconds=60,
        verbose=False,
    )
