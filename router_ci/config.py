"""
Script: router_ci/config.py
What: Loads the build settings shared by the build, push and help commands.
Doing: Reads environment variables with defaults and validates each value once.
Why: Version pins and image names used to be text substituted in several places.
Goal: Give every command one checked settings object instead of raw strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping

from router_ci.common import ConfigError, normalize_owner, optional_env


DEFAULT_REGISTRY = "ghcr.io"
DEFAULT_NAMESPACE = "ibm"
DEFAULT_IMAGE_NAME = "text-generation-router"
DEFAULT_TARGET = "router-release"
DEFAULT_PRIMARY_BRANCH = "main"
DEFAULT_BASE_UBI_MINIMAL_IMAGE_TAG = "9.4-949.1714662671"
DEFAULT_PROTOC_VERSION = "26.0"
DEFAULT_GRPC_PORT = 8033

REGISTRY_HOST_RE = re.compile(r"^[a-z0-9]([a-z0-9.-]*[a-z0-9])?(:[0-9]+)?$")
REPO_COMPONENT_RE = re.compile(r"^[a-z0-9]+([._-][a-z0-9]+)*(/[a-z0-9]+([._-][a-z0-9]+)*)*$")
IMAGE_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
PROTOC_VERSION_RE = re.compile(r"^[0-9]+\.[0-9]+(\.[0-9]+)?$")


@dataclass(frozen=True)
class BuildSettings:
    registry: str
    namespace: str
    image_name: str
    target: str
    primary_branch: str
    build_context: str
    base_image_tag: str
    protoc_version: str
    grpc_port: int

    @property
    def image_repo(self) -> str:
        """Fully qualified repository, e.g. `ghcr.io/ibm/text-generation-router`."""
        return f"{self.registry}/{self.namespace}/{self.image_name}"

    def build_arg_overrides(self) -> dict[str, str]:
        """Values for the global build arguments declared by the stage pipeline."""
        return {
            "BASE_UBI_MINIMAL_IMAGE_TAG": self.base_image_tag,
            "PROTOC_VERSION": self.protoc_version,
        }


def _check(pattern: re.Pattern[str], name: str, value: str) -> str:
    # Whole value must match; a trailing newline is rejected too.
    if not pattern.fullmatch(value):
        raise ConfigError(f"Invalid value for {name}: {value!r}")
    return value


def parse_port(value: str) -> int:
    """Parse a TCP port number in the range 1-65535."""
    try:
        port = int(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for GRPC_PORT: {value!r}") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"GRPC_PORT out of range: {port}")
    return port


def load_settings(env: Mapping[str, str] | None = None) -> BuildSettings:
    """Read and validate build settings from the environment."""
    registry = normalize_owner(optional_env("IMAGE_REGISTRY", DEFAULT_REGISTRY, env))
    namespace = normalize_owner(optional_env("IMAGE_NAMESPACE", DEFAULT_NAMESPACE, env))
    image_name = optional_env("IMAGE_NAME", DEFAULT_IMAGE_NAME, env)

    primary_branch = optional_env("PRIMARY_BRANCH", DEFAULT_PRIMARY_BRANCH, env).strip()
    if not primary_branch:
        raise ConfigError("PRIMARY_BRANCH must not be empty")

    target = optional_env("IMAGE_TARGET", DEFAULT_TARGET, env).strip()
    if not target:
        raise ConfigError("IMAGE_TARGET must not be empty")

    return BuildSettings(
        registry=_check(REGISTRY_HOST_RE, "IMAGE_REGISTRY", registry),
        namespace=_check(REPO_COMPONENT_RE, "IMAGE_NAMESPACE", namespace),
        image_name=_check(REPO_COMPONENT_RE, "IMAGE_NAME", image_name),
        target=target,
        primary_branch=primary_branch,
        build_context=optional_env("BUILD_CONTEXT", ".", env) or ".",
        base_image_tag=_check(
            IMAGE_TAG_RE,
            "BASE_UBI_MINIMAL_IMAGE_TAG",
            optional_env("BASE_UBI_MINIMAL_IMAGE_TAG", DEFAULT_BASE_UBI_MINIMAL_IMAGE_TAG, env),
        ),
        protoc_version=_check(
            PROTOC_VERSION_RE,
            "PROTOC_VERSION",
            optional_env("PROTOC_VERSION", DEFAULT_PROTOC_VERSION, env),
        ),
        grpc_port=parse_port(optional_env("GRPC_PORT", str(DEFAULT_GRPC_PORT), env)),
    )
