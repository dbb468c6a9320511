"""Tests for the CommandExecutor."""

import pytest

from release_orchestrator.core.executor import CommandExecutor, CommandResult


class TestCommandExecutor:

    @pytest.mark.asyncio
    async def test_runs_command(self, tmp_path):
        executor = CommandExecutor(working_dir=tmp_path)

        result = await executor.run("echo release")

        assert result.success
        assert result.stdout.strip() == "release"
        assert result.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path):
        executor = CommandExecutor(working_dir=tmp_path)

        result = await executor.run("false")

        assert not result.success
        assert result.return_code != 0

    @pytest.mark.asyncio
    async def test_rejects_injection_without_running(self, tmp_path):
        marker = tmp_path / "marker"
        executor = CommandExecutor(working_dir=tmp_path)

        result = await executor.run(f"echo ok; touch {marker}")

        assert result.return_code == -1
        assert "Security validation failed" in result.stderr
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_allowed_commands(self, tmp_path):
        executor = CommandExecutor(working_dir=tmp_path, allowed_commands=["docker"])

        result = await executor.run("echo hi")

        assert result.return_code == -1
        assert "not in allowed list" in result.stderr

    @pytest.mark.asyncio
    async def test_timeout_reports_minus_one(self, tmp_path):
        executor = CommandExecutor(working_dir=tmp_path)

        result = await executor.run("sleep 5", timeout=0.1)

        assert result.return_code == -1
        assert "timed out" in result.stderr


class TestCommandResult:

    def test_summary_prefers_stderr_and_masks(self):
        result = CommandResult("docker login", 1, "stdout text", "error: token=abc123 rejected")

        summary = result.summary()

        assert summary.startswith("exit code 1: ")
        assert "abc123" not in summary
        assert "stdout text" not in summary

    def test_summary_truncates(self):
        result = CommandResult("build", 2, "", "x" * 1000)

        assert len(result.summary(limit=50)) < 80

    def test_summary_without_output(self):
        assert CommandResult("true", 3, "", "").summary() == "exit code 3"
