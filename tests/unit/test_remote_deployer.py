"""Tests for the RemoteDeployer and its ssh session."""

from dataclasses import replace
from pathlib import Path

import pytest

from release_orchestrator.core.environment import EnvironmentResolver
from release_orchestrator.core.remote_deployer import RemoteChannel, RemoteDeployer
from release_orchestrator.errors import ConnectivityFailure, RemoteCommandFailure
from release_orchestrator.models.image import ImageReference
from release_orchestrator.models.request import Environment


@pytest.fixture
def profile(config):
    return EnvironmentResolver(config).resolve(Environment.DEV)


@pytest.fixture
def ref():
    return ImageReference.for_build("registry.example.com", "shop", Environment.DEV, 42)


@pytest.fixture
def deployer(fake_process, config):
    return RemoteDeployer(fake_process, config.hosts)


def step_of(command: str) -> str:
    for marker, step in (
        ("ControlMaster=yes", "open"),
        ("-O exit", "close"),
        ("scp ", "transfer"),
        ("mkdir -p", "prepare"),
        (" down ", "stop"),
        (" pull", "pull"),
        (" up -d", "start"),
        ("image prune", "prune"),
    ):
        if marker in command:
            return step
    return command


class TestRemoteDeployer:

    @pytest.mark.asyncio
    async def test_deploy_runs_steps_in_order(self, deployer, fake_process, profile, ref):
        outcome = await deployer.deploy(profile, ref)

        assert outcome.success
        assert outcome.steps == ["prepare", "transfer", "stop", "pull", "start", "prune"]
        assert [step_of(c) for c in fake_process.commands] == [
            "open", "prepare", "transfer", "stop", "pull", "start", "prune", "close",
        ]

    @pytest.mark.asyncio
    async def test_single_session_per_deploy(self, deployer, fake_process, profile, ref):
        await deployer.deploy(profile, ref)

        assert len(fake_process.ran("ControlMaster=yes")) == 1
        control_paths = {
            c.split("ControlPath=")[1].split()[0] for c in fake_process.commands
        }
        assert len(control_paths) == 1

    @pytest.mark.asyncio
    async def test_commands_target_environment_host_and_tag(self, deployer, fake_process, profile, ref):
        await deployer.deploy(profile, ref)

        pull = fake_process.ran(" pull")[0]
        assert "deploy@dev.example.com" in pull
        assert "IMAGE_TAG=dev-42" in pull
        assert "/opt/shop/dev/docker-compose.yml" in pull
        assert "-P 22" in fake_process.ran("scp ")[0]

    @pytest.mark.asyncio
    async def test_unreachable_host(self, deployer, fake_process, profile, ref):
        fake_process.on("ControlMaster=yes", return_code=255, stderr="ssh: connect to host dev.example.com port 22: Connection refused")

        outcome = await deployer.deploy(profile, ref)

        assert not outcome.success
        assert isinstance(outcome.error, ConnectivityFailure)
        assert "Connection refused" in outcome.reason
        assert outcome.steps == []
        assert len(fake_process.commands) == 1

    @pytest.mark.asyncio
    async def test_stop_tolerates_nothing_running(self, deployer, fake_process, profile, ref):
        fake_process.on(" down ", return_code=1, stderr="no such service: web")

        outcome = await deployer.deploy(profile, ref)

        assert outcome.success
        assert "stop" in outcome.steps

    @pytest.mark.asyncio
    async def test_stop_failure_aborts(self, deployer, fake_process, profile, ref):
        fake_process.on(" down ", return_code=1, stderr="permission denied while trying to connect to the Docker daemon")

        outcome = await deployer.deploy(profile, ref)

        assert not outcome.success
        assert isinstance(outcome.error, RemoteCommandFailure)
        assert outcome.error.step == "stop"
        assert fake_process.ran(" up -d") == []

    @pytest.mark.asyncio
    async def test_pull_failure_never_starts(self, deployer, fake_process, profile, ref):
        fake_process.on(" pull", return_code=1, stderr="manifest unknown")

        outcome = await deployer.deploy(profile, ref)

        assert not outcome.success
        assert outcome.error.step == "pull"
        assert "manifest unknown" in outcome.reason
        assert fake_process.ran(" up -d") == []
        # Session is still closed
        assert len(fake_process.ran("-O exit")) == 1

    @pytest.mark.asyncio
    async def test_prune_failure_is_warning(self, deployer, fake_process, profile, ref):
        fake_process.on("image prune", return_code=1, stderr="prune in progress")

        outcome = await deployer.deploy(profile, ref)

        assert outcome.success
        assert "prune" not in outcome.steps
        assert len(outcome.warnings) == 1

    @pytest.mark.asyncio
    async def test_redeploy_same_reference_converges(self, deployer, fake_process, profile, ref):
        first = await deployer.deploy(profile, ref)
        first_commands = [step_of(c) for c in fake_process.commands]
        fake_process.commands.clear()

        second = await deployer.deploy(profile, ref)

        assert first.success and second.success
        assert [step_of(c) for c in fake_process.commands] == first_commands

    @pytest.mark.asyncio
    async def test_invalid_host_is_connectivity_failure(self, deployer, fake_process, profile, ref):
        outcome = await deployer.deploy(replace(profile, host="dev.example.com;reboot"), ref)

        assert isinstance(outcome.error, ConnectivityFailure)
        assert fake_process.commands == []

    @pytest.mark.asyncio
    async def test_missing_compose_file(self, deployer, fake_process, profile, ref, tmp_path):
        outcome = await deployer.deploy(replace(profile, compose_file=tmp_path / "missing.yml"), ref)

        assert isinstance(outcome.error, RemoteCommandFailure)
        assert outcome.error.step == "transfer"
        assert fake_process.commands == []


class TestRemoteChannel:

    @pytest.mark.asyncio
    async def test_key_and_port_are_passed(self, fake_process, config):
        hosts = replace(config.hosts, ssh_key="/keys/deploy", ssh_port=2222)

        async with RemoteChannel(fake_process, hosts, "prod.example.com") as channel:
            await channel.execute("docker ps")

        opened = fake_process.ran("ControlMaster=yes")[0]
        assert "-i /keys/deploy" in opened
        assert "-p 2222" in opened
        assert fake_process.commands[1].endswith("deploy@prod.example.com 'docker ps'")


class TestComposeFileLookup:

    @pytest.mark.asyncio
    async def test_compose_dir_relative_to_workspace(self, fake_process, config, tmp_path, monkeypatch):
        workspace = tmp_path / "ws"
        (workspace / "deploy").mkdir(parents=True)
        (workspace / "deploy" / "docker-compose.dev.yml").write_text("services: {}\n")
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.chdir(elsewhere)
        relative = replace(config, workspace_dir=workspace, compose_dir=Path("deploy"))
        profile = EnvironmentResolver(relative).resolve(Environment.DEV)
        ref = ImageReference.for_build("registry.example.com", "shop", Environment.DEV, 42)

        outcome = await RemoteDeployer(fake_process, relative.hosts).deploy(profile, ref)

        assert outcome.success, outcome.reason
        assert str(workspace / "deploy" / "docker-compose.dev.yml") in fake_process.ran("scp ")[0]
