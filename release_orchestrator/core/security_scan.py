"""Image vulnerability scan gate, run between tagging and publishing."""

from .executor import ExternalProcess
from .logger import PipelineLogger
from ..errors import SecurityScanFailure
from ..models.image import ImageReference


class SecurityScanner:
    """Runs the configured scanner against the build tag; a non-zero exit rejects the image."""

    def __init__(self, runner: ExternalProcess, command_template: str, timeout: float = 900):
        self.runner = runner
        self.command_template = command_template
        self.timeout = timeout
        self.logger = PipelineLogger("SecurityScanner")

    async def scan(self, ref: ImageReference) -> str:
        command = self.command_template.format(image=ref.build_image)
        result = await self.runner.run(command, timeout=self.timeout)
        if not result.success:
            raise SecurityScanFailure(f"security scan rejected {ref.build_image} ({result.summary()})")
        self.logger.success(f"No blocking findings in {ref.build_image}")
        return "security scan passed"
