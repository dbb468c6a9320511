"""
Release Orchestrator - Main Entry Point
CLI interface for the staged release pipeline.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from release_orchestrator.config import get_config
from release_orchestrator.core.environment import EnvironmentResolver
from release_orchestrator.core.health_checker import HealthChecker
from release_orchestrator.core.logger import setup_logging
from release_orchestrator.core.security import InputValidator, SecurityError
from release_orchestrator.errors import ConfigurationError
from release_orchestrator.models.report import PipelineReport, StageOutcome
from release_orchestrator.models.request import DeploymentRequest, Environment
from release_orchestrator.pipeline.orchestrator import ReleaseOrchestrator
from release_orchestrator.utils.helpers import format_duration, truncate_text

# CLI app
app = typer.Typer(
    name="release-orchestrator",
    help="Build, scan, publish, deploy and verify a release.",
    add_completion=False,
)

console = Console()
# Warnings and errors that must not mix with --json output on stdout
err_console = Console(stderr=True)

CONFIGURATION_ERROR_EXIT = 2


def print_header(request: DeploymentRequest):
    """Print the application header."""
    console.print(Panel.fit(
        f"[bold blue]Release Orchestrator[/bold blue]\n"
        f"[dim]{request.environment.value} · build {request.build_id}[/dim]",
        border_style="blue",
    ))


def _parse_request(env: str, build_id: int, skip_tests: bool) -> DeploymentRequest:
    try:
        return DeploymentRequest(environment=env, build_id=build_id, skip_tests=skip_tests)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(CONFIGURATION_ERROR_EXIT)


@app.command()
def deploy(
    env: str = typer.Option(..., "--env", "-e", help="Target environment (dev or prod)"),
    build_id: int = typer.Option(..., "--build-id", "-b", help="Monotonic build identifier"),
    skip_tests: bool = typer.Option(False, "--skip-tests", help="Skip the test stage"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    output_json: bool = typer.Option(False, "--json", help="Output the report as JSON"),
    report_file: Optional[Path] = typer.Option(
        None, "--report-file", help="Also write the JSON report to this path",
    ),
):
    """
    Run the full release pipeline for one build.

    Exits 0 only when every blocking stage succeeded.

    Example:
        release-orchestrator deploy --env dev --build-id 42
    """
    request = _parse_request(env, build_id, skip_tests)
    config = get_config()
    setup_logging(verbose or config.verbose)

    if not output_json:
        print_header(request)

    issues = config.validate()
    if issues:
        err_console.print("[yellow]Configuration warnings:[/yellow]")
        for issue in issues:
            err_console.print(f"  • {escape(issue)}")
        err_console.print()

    report = asyncio.run(ReleaseOrchestrator(config).run(request))

    if report_file:
        report_file.parent.mkdir(parents=True, exist_ok=True)
        report_file.write_text(json.dumps(report.to_dict(), indent=2))

    if output_json:
        console.print_json(json.dumps(report.to_dict()))
    else:
        _print_report(report)

    raise typer.Exit(report.exit_code)


@app.command()
def resolve(
    env: str = typer.Option(..., "--env", "-e", help="Target environment (dev or prod)"),
):
    """Show the runtime parameters of an environment."""
    try:
        environment = Environment.parse(env)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(CONFIGURATION_ERROR_EXIT)

    profile = EnvironmentResolver(get_config()).resolve(environment)

    table = Table(title=f"Environment: {environment.value}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    for key, value in profile.to_dict().items():
        table.add_row(key, str(value) if value != "" else "-")
    table.add_row("health_url", profile.health_url())
    console.print(table)


@app.command()
def health(
    env: str = typer.Option(..., "--env", "-e", help="Target environment (dev or prod)"),
    attempts: Optional[int] = typer.Option(None, "--attempts", help="Override maximum probes"),
    interval: Optional[float] = typer.Option(None, "--interval", help="Override seconds between probes"),
    delay: float = typer.Option(0, "--delay", help="Seconds to wait before the first probe"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Probe an environment's health endpoint without deploying."""
    try:
        environment = Environment.parse(env)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(CONFIGURATION_ERROR_EXIT)

    config = get_config()
    setup_logging(verbose)
    profile = EnvironmentResolver(config).resolve(environment)
    try:
        InputValidator.validate_host(profile.host)
    except SecurityError as e:
        err_console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(CONFIGURATION_ERROR_EXIT)

    checker = HealthChecker(request_timeout=config.health.request_timeout)

    result = asyncio.run(checker.check(
        profile,
        max_attempts=attempts or config.health.max_attempts,
        interval_seconds=interval if interval is not None else config.health.interval_seconds,
        initial_delay_seconds=delay,
        path=config.health.path,
    ))

    if result.healthy:
        console.print(f"[bold green]Healthy[/bold green] {result.url} ({result.checks_performed} probe(s))")
        raise typer.Exit(0)

    console.print(f"[bold red]Unhealthy[/bold red] {result.url}: {escape(result.last_error or '')}")
    raise typer.Exit(1)


def _print_report(report: PipelineReport):
    """Print the pipeline report."""
    color = "green" if report.succeeded else "red"

    console.print(Panel(
        f"[bold {color}]{report.verdict.value.upper()}[/bold {color}]\n"
        f"Duration: {format_duration(report.duration_seconds)}",
        title=f"Run: {report.run_id}",
        border_style=color,
    ))

    table = Table(title="Pipeline Stages")
    table.add_column("Stage", style="cyan")
    table.add_column("Outcome")
    table.add_column("Duration")
    table.add_column("Diagnostic")

    icons = {
        StageOutcome.SUCCESS: "✅",
        StageOutcome.FAILURE: "❌",
        StageOutcome.SKIPPED: "⏭",
    }
    for result in report.stages:
        table.add_row(
            result.name,
            f"{icons[result.outcome]} {result.outcome.value}",
            f"{result.duration_ms / 1000:.1f}s",
            escape(truncate_text(result.diagnostic, 80)) if result.diagnostic else "-",
        )

    console.print(table)

    if report.image and report.succeeded:
        console.print(f"\n[bold]📦 Image:[/bold] {report.image.build_image} ({report.image.env_latest_tag})")
    if report.health_url and report.succeeded:
        console.print(f"[bold green]🚀 Serving:[/bold green] {report.health_url}")

    failed = report.failed_stage()
    if failed:
        console.print(f"\n[bold red]Failed at {failed.name}:[/bold red] {escape(failed.diagnostic or '')}")


if __name__ == "__main__":
    app()
