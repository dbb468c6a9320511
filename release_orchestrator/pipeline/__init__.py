"""Pipeline assembly for the Release Orchestrator."""

from .orchestrator import ReleaseOrchestrator, RunState, release

__all__ = [
    "ReleaseOrchestrator",
    "RunState",
    "release",
]
