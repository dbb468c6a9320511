"""Release Orchestrator - staged build, publish, deploy and verify pipeline."""

__version__ = "0.1.0"
