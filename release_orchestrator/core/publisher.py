"""
Artifact Publisher - builds, tags and pushes the release image.

Provides:
- docker build for the environment's build tag
- re-tagging of the same image as the environment's latest tag
- push of both tags with partial-publish detection
"""

import re
import shlex
from dataclasses import replace
from typing import Optional

from .executor import CommandResult, ExternalProcess
from .logger import PipelineLogger
from .security import InputValidator, SecurityError
from ..config import RegistryConfig
from ..errors import BuildFailure, PartialPublishFailure, PublishFailure, TagFailure
from ..models.environment import EnvironmentProfile
from ..models.image import ImageReference


DIGEST_PATTERN = re.compile(r"digest:\s*(sha256:[a-f0-9]{64})")


class ArtifactPublisher:
    """
    Publishes one build of the application image.

    Usage:
        publisher = ArtifactPublisher(runner, config.registry)
        ref = await publisher.build(profile, build_id=42)
        ref = await publisher.tag(ref)
        ref = await publisher.push(ref)
    """

    def __init__(
        self,
        runner: ExternalProcess,
        registry: RegistryConfig,
        timeout: float = 1800,
    ):
        self.runner = runner
        self.registry = registry
        self.timeout = timeout
        self.logger = PipelineLogger("ArtifactPublisher")

    async def build(self, profile: EnvironmentProfile, build_id: int) -> ImageReference:
        """
        Build the image under ``{environment}-{build_id}``.

        Raises:
            BuildFailure: If the build command fails or the image cannot be inspected
        """
        ref = ImageReference.for_build(
            self.registry.url, self.registry.image_name, profile.environment, build_id
        )
        try:
            InputValidator.validate_docker_image(ref.build_image)
        except SecurityError as e:
            raise BuildFailure(str(e)) from e

        self.logger.info(f"Building image: {ref.build_image}")
        result = await self.runner.run(
            f"docker build -t {ref.build_image} "
            f"-f {shlex.quote(self.registry.dockerfile)} {shlex.quote(self.registry.build_context)}",
            timeout=self.timeout,
        )
        if not result.success:
            raise BuildFailure(f"docker build failed for {ref.build_image} ({result.summary()})")

        image_id = await self._image_id(ref.build_image)
        if image_id is None:
            raise BuildFailure(f"built image {ref.build_image} not found locally")

        self.logger.success(f"Built {ref.build_image}", image_id=image_id)
        return replace(ref, image_id=image_id)

    async def tag(self, ref: ImageReference) -> ImageReference:
        """
        Point the environment's latest tag at the image just built.

        Raises:
            TagFailure: If tagging fails or the two tags resolve to different images
        """
        result = await self.runner.run(f"docker tag {ref.build_image} {ref.latest_image}", timeout=60)
        if not result.success:
            raise TagFailure(f"docker tag {ref.latest_image} failed ({result.summary()})")

        latest_id = await self._image_id(ref.latest_image)
        if ref.image_id is not None and latest_id != ref.image_id:
            raise TagFailure(
                f"{ref.latest_image} resolves to {latest_id}, expected {ref.image_id}"
            )

        self.logger.success(f"Tagged {ref.latest_image}")
        return replace(ref, image_id=latest_id or ref.image_id)

    async def push(self, ref: ImageReference) -> ImageReference:
        """
        Push the build tag, then the latest tag.

        The build tag goes first so a failure there leaves the registry
        untouched. A failure on the second push is reported as a partial
        publish and is not retried.

        Raises:
            PublishFailure: Nothing was published
            PartialPublishFailure: The build tag was published, the latest tag was not,
                or the registry reports different digests for the two tags
        """
        first = await self.runner.run(f"docker push {ref.build_image}", timeout=self.timeout)
        if not first.success:
            raise PublishFailure(f"push of {ref.build_image} failed ({first.summary()})")

        second = await self.runner.run(f"docker push {ref.latest_image}", timeout=self.timeout)
        if not second.success:
            self.logger.error(
                f"Registry inconsistent: {ref.build_image} published, {ref.latest_image} not"
            )
            raise PartialPublishFailure(
                f"push of {ref.latest_image} failed after {ref.build_image} was published "
                f"({second.summary()})",
                published=[ref.build_image],
                failed=[ref.latest_image],
            )

        build_digest = self._parse_digest(first)
        latest_digest = self._parse_digest(second)
        if build_digest and latest_digest and build_digest != latest_digest:
            raise PartialPublishFailure(
                f"registry digests differ: {ref.build_tag}={build_digest} "
                f"{ref.env_latest_tag}={latest_digest}",
                published=[ref.build_image, ref.latest_image],
                failed=[],
            )

        self.logger.success(f"Published {ref.build_image} and {ref.latest_image}", digest=build_digest)
        return replace(ref, digest=build_digest or latest_digest)

    async def remove_local(self, ref: ImageReference) -> CommandResult:
        """Remove the run's local tags. Best-effort, used by cleanup."""
        return await self.runner.run(f"docker rmi {ref.build_image} {ref.latest_image}", timeout=120)

    async def _image_id(self, image: str) -> Optional[str]:
        result = await self.runner.run(
            f"docker image inspect --format {shlex.quote('{{.Id}}')} {image}", timeout=60
        )
        if not result.success:
            return None
        return result.stdout.strip() or None

    @staticmethod
    def _parse_digest(result: CommandResult) -> Optional[str]:
        match = DIGEST_PATTERN.search(result.stdout)
        return match.group(1) if match else None
