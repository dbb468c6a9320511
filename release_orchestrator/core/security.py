"""
Guards for everything the pipeline hands to a shell or prints.

Provides:
- Rejection of shell metacharacters in commands built from configuration
- Image reference and host name checks before they reach docker or ssh
- Masking of registry, analysis and SCM credentials in diagnostics and logs
"""

import re
import shlex
from typing import Any, Dict, Iterable, Optional


class SecurityError(Exception):
    """Raised when an input would be unsafe to pass on."""
    pass


REDACTED = "***REDACTED***"

# Characters that let one configured command smuggle in another
_SHELL_METACHARACTERS = (";", "|", "&", "$", "`", "\n", "\r", "(", ")", "<", ">")

# Final path segment of an image reference: name[:tag]
_IMAGE_NAME = re.compile(r"^[a-z0-9]+(?:[._-][a-z0-9]+)*(?::[a-z0-9._-]{1,128})?$", re.IGNORECASE)
_REGISTRY_SEGMENT = re.compile(r"^[A-Za-z0-9.-]+(?::\d+)?$")

_HOST = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?$")

_SENSITIVE_KEYS = ("password", "token", "secret")


class InputValidator:
    """Static checks applied before a value becomes part of a command line."""

    @staticmethod
    def validate_command(command: str, allowed_commands: Optional[Iterable[str]] = None) -> bool:
        """
        Reject commands that chain, redirect or substitute.

        Args:
            command: Full command line
            allowed_commands: Optional executable prefixes the command must start with

        Raises:
            SecurityError: On a shell metacharacter or an executable outside the allow-list
        """
        found = next((c for c in _SHELL_METACHARACTERS if c in command), None)
        if found is not None:
            raise SecurityError(f"Dangerous character {found!r} detected in command")

        if allowed_commands:
            try:
                executable = shlex.split(command)[0]
            except (ValueError, IndexError):
                executable = ""
            if not any(executable.startswith(prefix) for prefix in allowed_commands):
                raise SecurityError(f"Command '{executable}' not in allowed list")

        return True

    @staticmethod
    def validate_docker_image(image: str) -> bool:
        """
        Check a ``[registry[:port]/][namespace/]name[:tag]`` image reference.

        Raises:
            SecurityError: If any segment is malformed
        """
        if not image or " " in image:
            raise SecurityError(f"Invalid Docker image name: {image!r}")

        *prefix, last = image.split("/")
        if not _IMAGE_NAME.match(last):
            raise SecurityError(f"Invalid Docker image name: {image}")
        if any(not _REGISTRY_SEGMENT.match(segment) for segment in prefix):
            raise SecurityError(f"Invalid registry or namespace in image name: {image}")
        return True

    @staticmethod
    def validate_host(host: str) -> bool:
        """Validate a remote host name or IPv4 address."""
        if not host or not _HOST.match(host):
            raise SecurityError(f"Invalid host name: {host!r}")
        return True


class SecretsMasker:
    """Replaces known credential shapes before text leaves the process."""

    SECRET_PATTERNS = [
        (re.compile(r"ghp_[A-Za-z0-9]{36}"), "GITHUB_TOKEN"),
        (re.compile(r"sq[up]_[a-f0-9]{40}"), "SONAR_TOKEN"),
        (re.compile(r"dckr_pat_[A-Za-z0-9_-]{20,}"), "DOCKER_TOKEN"),
    ]

    ASSIGNMENT = re.compile(r"(password|token|secret)[\s=:]+\S+", re.IGNORECASE)

    @classmethod
    def mask_secrets(cls, text: str) -> str:
        for pattern, label in cls.SECRET_PATTERNS:
            text = pattern.sub(f"***{label}***", text)
        return cls.ASSIGNMENT.sub(lambda m: f"{m.group(1)}={REDACTED}", text)

    @classmethod
    def mask_dict(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask a nested mapping: sensitive keys entirely, other strings by pattern."""
        masked: Dict[str, Any] = {}
        for key, value in data.items():
            if any(word in key.lower() for word in _SENSITIVE_KEYS):
                masked[key] = REDACTED
            elif isinstance(value, dict):
                masked[key] = cls.mask_dict(value)
            elif isinstance(value, str):
                masked[key] = cls.mask_secrets(value)
            else:
                masked[key] = value
        return masked


def mask_secrets(text: str) -> str:
    """Mask secrets in text."""
    return SecretsMasker.mask_secrets(text)
