"""
Structured logging for the Release Orchestrator.
Uses structlog for machine-readable run logs and rich for operator output.
"""

import sys

import structlog
from rich.console import Console
from rich.markup import escape
from rich.theme import Theme
from typing import Any

# Custom theme for rich output
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "stage": "bold magenta",
    "skipped": "dim",
})

console = Console(theme=custom_theme, stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configure structured logging."""

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if verbose:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(10 if verbose else 20),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)


def bind_run_context(**values: Any) -> None:
    """Attach run-wide fields (run id, environment, build id) to every log line."""
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()


class PipelineLogger:
    """High-level logger for pipeline components with rich output."""

    def __init__(self, component: str):
        self.component = component
        self.tag = f"[{component}]"
        self.logger = get_logger(component)

    def stage(self, name: str, index: int = None) -> None:
        """Log the start of a pipeline stage."""
        prefix = f"[Stage {index}]" if index else "[→]"
        console.print(f"[stage]{escape(prefix)}[/stage] {escape(self.tag)} {escape(name)}")
        self.logger.info("stage started", stage=name, index=index)

    def success(self, message: str, **kwargs: Any) -> None:
        """Log a success message."""
        console.print(f"[success]✓[/success] {escape(self.tag)} {escape(message)}")
        self.logger.info(message, status="success", **kwargs)

    def skipped(self, message: str, **kwargs: Any) -> None:
        console.print(f"[skipped]-[/skipped] {escape(self.tag)} {escape(message)}")
        self.logger.info(message, status="skipped", **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning message."""
        console.print(f"[warning]⚠[/warning] {escape(self.tag)} {escape(message)}")
        self.logger.warning(message, **kwargs)

    def error(self, message: str, exc: Exception = None, **kwargs: Any) -> None:
        """Log an error message."""
        console.print(f"[error]✗[/error] {escape(self.tag)} {escape(message)}")
        self.logger.error(message, exc_info=exc, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info message."""
        console.print(f"[info]ℹ[/info] {escape(self.tag)} {escape(message)}")
        self.logger.info(message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a debug message."""
        self.logger.debug(message, **kwargs)
