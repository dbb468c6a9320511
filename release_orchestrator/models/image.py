"""
Image reference model.

A build is published under two tags: ``{environment}-{build_id}`` and
``{environment}-latest``. Both must resolve to the same digest once pushed.
"""

from dataclasses import dataclass
from typing import Optional

from .request import Environment


@dataclass(frozen=True)
class ImageReference:
    registry: str
    name: str
    build_tag: str
    env_latest_tag: str
    image_id: Optional[str] = None
    digest: Optional[str] = None

    @classmethod
    def for_build(cls, registry: str, name: str, environment: Environment, build_id: int) -> "ImageReference":
        """Create the reference for one build of one environment."""
        return cls(
            registry=registry.rstrip("/"),
            name=name,
            build_tag=f"{environment.value}-{build_id}",
            env_latest_tag=f"{environment.value}-latest",
        )

    @property
    def repository(self) -> str:
        """Get repository name with registry."""
        if self.registry:
            return f"{self.registry}/{self.name}"
        return self.name

    @property
    def build_image(self) -> str:
        return f"{self.repository}:{self.build_tag}"

    @property
    def latest_image(self) -> str:
        return f"{self.repository}:{self.env_latest_tag}"

    def to_dict(self) -> dict:
        return {
            "repository": self.repository,
            "build_tag": self.build_tag,
            "env_latest_tag": self.env_latest_tag,
            "image_id": self.image_id,
            "digest": self.digest,
        }
