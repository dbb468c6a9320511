"""Tests for environment resolution and request validation."""

from dataclasses import replace
from pathlib import Path

import pytest

from release_orchestrator.core.environment import EnvironmentResolver
from release_orchestrator.errors import ConfigurationError
from release_orchestrator.models.request import DeploymentRequest, Environment


class TestEnvironmentResolver:
    """Tests for EnvironmentResolver."""

    @pytest.mark.parametrize("environment, port, suffix", [
        (Environment.DEV, 8000, "dev"),
        (Environment.PROD, 80, "prod"),
    ])
    def test_profile_matches_fixed_table(self, config, environment, port, suffix):
        profile = EnvironmentResolver(config).resolve(environment)

        assert profile.environment is environment
        assert profile.port == port
        assert profile.tag_suffix == suffix
        assert profile.compose_file == Path(config.compose_dir) / f"docker-compose.{suffix}.yml"

    def test_hosts_come_from_config(self, config):
        resolver = EnvironmentResolver(config)

        assert resolver.resolve(Environment.DEV).host == "dev.example.com"
        assert resolver.resolve(Environment.PROD).host == "prod.example.com"

    def test_resolve_is_deterministic(self, config):
        resolver = EnvironmentResolver(config)

        assert resolver.resolve(Environment.PROD) == resolver.resolve(Environment.PROD)
        assert EnvironmentResolver(config).resolve(Environment.DEV) == resolver.resolve(Environment.DEV)

    def test_relative_compose_dir_is_inside_workspace(self, config, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        workspace = tmp_path / "ws"
        relative = replace(config, workspace_dir=workspace, compose_dir=Path("deploy"))

        profile = EnvironmentResolver(relative).resolve(Environment.DEV)

        assert profile.compose_file == workspace / "deploy" / "docker-compose.dev.yml"
        assert profile.compose_file.is_absolute()

    def test_health_url(self, config):
        profile = EnvironmentResolver(config).resolve(Environment.DEV)

        assert profile.health_url() == "http://dev.example.com:8000/health"
        assert profile.health_url("status") == "http://dev.example.com:8000/status"


class TestDeploymentRequest:
    """Tests for DeploymentRequest validation."""

    def test_accepts_string_environment(self):
        request = DeploymentRequest(environment="Prod", build_id=7)

        assert request.environment is Environment.PROD
        assert request.skip_tests is False

    def test_rejects_unknown_environment(self):
        with pytest.raises(ConfigurationError, match="staging"):
            DeploymentRequest(environment="staging", build_id=1)

    @pytest.mark.parametrize("build_id", [-1, "42", 4.2, True])
    def test_rejects_invalid_build_id(self, build_id):
        with pytest.raises(ConfigurationError):
            DeploymentRequest(environment=Environment.DEV, build_id=build_id)

    def test_is_immutable(self):
        request = DeploymentRequest(environment=Environment.DEV, build_id=42)

        with pytest.raises(AttributeError):
            request.build_id = 43
