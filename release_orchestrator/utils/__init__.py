"""Utility functions for the Release Orchestrator."""

from .helpers import generate_id, format_duration, truncate_text

__all__ = [
    "generate_id",
    "format_duration",
    "truncate_text",
]
