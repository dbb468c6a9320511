"""
Error taxonomy for the release pipeline.

Every stage failure is expressed as a PipelineError subclass so the stage
runner can record a diagnostic without knowing which component raised it.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for failures the pipeline knows how to report."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PipelineError):
    """Invalid or unsupported request; raised before any stage runs."""
    pass


class BestEffortFailure(PipelineError):
    """Failure of a stage whose outcome does not halt the run."""
    pass


class StageCommandFailure(PipelineError):
    """An external command behind a simple stage (checkout, setup, lint, test) failed."""
    pass


class GateFailure(PipelineError):
    """An external judgment rejected the run."""
    pass


class SecurityScanFailure(GateFailure):
    """The image scanner reported findings above the configured threshold."""
    pass


class GateTimeout(PipelineError):
    """An external judgment did not arrive within its time budget."""
    pass


class BuildFailure(PipelineError):
    pass


class TagFailure(PipelineError):
    pass


class PublishFailure(PipelineError):
    """Nothing was published; the registry is unchanged."""
    pass


class PartialPublishFailure(PublishFailure):
    """
    Some tags reached the registry and some did not.

    The registry may now be inconsistent (the environment's latest tag can
    point at a different build than the caller expects). Never retried.
    """

    def __init__(self, message: str, published: list[str], failed: list[str], stage: Optional[str] = None):
        super().__init__(message, stage)
        self.published = published
        self.failed = failed


class ConnectivityFailure(PipelineError):
    """The authenticated channel to the remote host could not be established."""
    pass


class RemoteCommandFailure(PipelineError):
    """A command issued over the remote channel failed."""

    def __init__(self, message: str, step: str, stage: Optional[str] = None):
        super().__init__(message, stage)
        self.step = step


class HealthCheckExhausted(PipelineError):
    """All health probes failed; the deployed service is not serving traffic."""

    def __init__(self, message: str, attempts: int, stage: Optional[str] = None):
        super().__init__(message, stage)
        self.attempts = attempts
