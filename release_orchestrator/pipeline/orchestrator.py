"""
Release Orchestrator - wires the pipeline components into one run:

    checkout -> setup -> lint -> test -> quality_gate -> build -> tag
    -> security_scan -> push -> deploy -> health_check -> cleanup
"""

from dataclasses import asdict, dataclass
from typing import List, Optional, Tuple

from ..config import Config
from ..core.environment import EnvironmentResolver
from ..core.executor import CommandExecutor, ExternalProcess
from ..core.health_checker import HealthChecker, HealthCheckResult
from ..core.logger import PipelineLogger, bind_run_context, clear_run_context
from ..core.publisher import ArtifactPublisher
from ..core.quality_gate import QualityGate
from ..core.remote_deployer import DeployOutcome, RemoteDeployer
from ..core.security import SecretsMasker
from ..core.security_scan import SecurityScanner
from ..core.stage_runner import StageDescriptor, StageRunner
from ..errors import HealthCheckExhausted, PipelineError, StageCommandFailure
from ..models.environment import EnvironmentProfile
from ..models.image import ImageReference
from ..models.report import Criticality, PipelineReport
from ..models.request import DeploymentRequest
from ..utils.helpers import generate_id


@dataclass
class RunState:
    """Values produced by one stage and consumed by later ones."""
    image: Optional[ImageReference] = None
    deploy: Optional[DeployOutcome] = None
    health: Optional[HealthCheckResult] = None


class ReleaseOrchestrator:
    """
    Runs one release for one DeploymentRequest.

    Usage:
        orchestrator = ReleaseOrchestrator(config)
        report = await orchestrator.run(DeploymentRequest(Environment.DEV, 42))
    """

    def __init__(
        self,
        config: Config,
        runner: ExternalProcess = None,
        quality_gate: QualityGate = None,
        health_checker: HealthChecker = None,
        stage_runner: StageRunner = None,
    ):
        self.config = config
        self.logger = PipelineLogger("Orchestrator")
        self.runner = runner or CommandExecutor(
            working_dir=config.workspace_dir,
            logger=PipelineLogger("CommandExecutor"),
            default_timeout=config.command_timeout_seconds,
        )

        self.resolver = EnvironmentResolver(config)
        self.publisher = ArtifactPublisher(
            self.runner, config.registry, timeout=config.command_timeout_seconds
        )
        self.quality_gate = quality_gate or QualityGate(config.quality_gate, runner=self.runner)
        self.scanner = SecurityScanner(self.runner, config.commands.security_scan)
        self.deployer = RemoteDeployer(self.runner, config.hosts)
        self.health_checker = health_checker or HealthChecker(
            request_timeout=config.health.request_timeout
        )
        self.stage_runner = stage_runner or StageRunner(run_timeout=config.run_timeout_seconds)

    async def run(self, request: DeploymentRequest, run_id: str = None) -> PipelineReport:
        """
        Execute the full pipeline for a request.

        Args:
            request: Validated deployment request
            run_id: Optional identifier, generated when omitted

        Returns:
            The finalized PipelineReport
        """
        run_id = run_id or generate_id("run")
        profile = self.resolver.resolve(request.environment)
        state = RunState()
        stages, cleanup = self.build_stages(request, profile, state)

        bind_run_context(
            run_id=run_id,
            environment=request.environment.value,
            build_id=request.build_id,
        )
        self.logger.info(
            f"Starting release of build {request.build_id} to {request.environment.value}",
            host=profile.host,
        )
        self.logger.debug("configuration", config=SecretsMasker.mask_dict(asdict(self.config)))

        try:
            return await self.stage_runner.run(
                stages,
                cleanup=cleanup,
                run_id=run_id,
                environment=request.environment.value,
                build_id=request.build_id,
                outputs=lambda: {
                    "image": state.image,
                    "health_url": profile.health_url(self.config.health.path),
                },
            )
        finally:
            clear_run_context()

    def build_stages(
        self,
        request: DeploymentRequest,
        profile: EnvironmentProfile,
        state: RunState,
    ) -> Tuple[List[StageDescriptor], StageDescriptor]:
        """Describe the stage sequence and the cleanup stage for one run."""
        commands = self.config.commands

        async def checkout() -> Optional[str]:
            return await self._command("checkout", commands.checkout)

        async def setup() -> Optional[str]:
            return await self._command("setup", commands.setup)

        async def lint() -> Optional[str]:
            return await self._command("lint", commands.lint)

        async def test() -> Optional[str]:
            return await self._command("test", commands.test)

        async def quality_gate() -> Optional[str]:
            return await self.quality_gate.enforce(self.config.quality_gate.timeout_seconds)

        async def build() -> Optional[str]:
            state.image = await self.publisher.build(profile, request.build_id)
            return f"built {state.image.build_image}"

        async def tag() -> Optional[str]:
            state.image = await self.publisher.tag(self._require_image(state))
            return f"tagged {state.image.latest_image}"

        async def security_scan() -> Optional[str]:
            return await self.scanner.scan(self._require_image(state))

        async def push() -> Optional[str]:
            state.image = await self.publisher.push(self._require_image(state))
            return f"published {state.image.build_tag} and {state.image.env_latest_tag}"

        async def deploy() -> Optional[str]:
            outcome = await self.deployer.deploy(profile, self._require_image(state))
            state.deploy = outcome
            if not outcome.success:
                raise outcome.error or PipelineError(outcome.reason or "deploy failed")
            if outcome.warnings:
                return "deployed with warnings: " + "; ".join(outcome.warnings)
            return f"deployed to {profile.host}"

        async def health_check() -> Optional[str]:
            health = self.config.health
            result = await self.health_checker.check(
                profile,
                max_attempts=health.max_attempts,
                interval_seconds=health.interval_seconds,
                initial_delay_seconds=health.initial_delay_seconds,
                path=health.path,
            )
            state.health = result
            if not result.healthy:
                raise HealthCheckExhausted(
                    f"{result.url} unhealthy after {result.checks_performed} attempt(s): {result.last_error}",
                    attempts=result.checks_performed,
                )
            return f"healthy after {result.checks_performed} attempt(s)"

        async def cleanup() -> Optional[str]:
            if state.image is None or state.image.image_id is None:
                return "nothing to clean"
            result = await self.publisher.remove_local(state.image)
            if not result.success:
                raise StageCommandFailure(f"could not remove local images ({result.summary()})")
            return "removed local image tags"

        stages = [
            StageDescriptor("checkout", checkout),
            StageDescriptor("setup", setup),
            StageDescriptor("lint", lint, criticality=Criticality.BEST_EFFORT),
            StageDescriptor(
                "test", test,
                enabled=not request.skip_tests,
                skip_reason="tests skipped by request",
            ),
            StageDescriptor("quality_gate", quality_gate),
            StageDescriptor("build", build),
            StageDescriptor("tag", tag),
            StageDescriptor("security_scan", security_scan),
            StageDescriptor("push", push),
            StageDescriptor("deploy", deploy),
            StageDescriptor("health_check", health_check),
        ]
        return stages, StageDescriptor("cleanup", cleanup, criticality=Criticality.BEST_EFFORT)

    async def _command(self, stage: str, command: str) -> Optional[str]:
        result = await self.runner.run(command)
        if not result.success:
            raise StageCommandFailure(f"{command!r} failed ({result.summary()})", stage=stage)
        return None

    @staticmethod
    def _require_image(state: RunState) -> ImageReference:
        if state.image is None:
            raise PipelineError("no image has been built in this run")
        return state.image


async def release(
    config: Config,
    request: DeploymentRequest,
) -> PipelineReport:
    """
    Run a release with the default components.

    Args:
        config: Injected configuration
        request: What to release and where

    Returns:
        PipelineReport with all results
    """
    orchestrator = ReleaseOrchestrator(config)
    return await orchestrator.run(request)
