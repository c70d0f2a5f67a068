"""
Script: router_ci/common.py
What: Shared helper functions and error types used by all `router_ci` modules.
Doing: Wraps env reads, command execution, and GitHub step-output writes.
Why: Avoids duplicated helper code across the build, tag and push commands.
Goal: Keep failure reporting and subprocess behavior consistent everywhere.
"""

from __future__ import annotations

import os
import subprocess
from typing import Mapping, Sequence


class RouterCiError(RuntimeError):
    """Raised when a workflow helper hits a known error condition."""

    exit_code = 1


class CommandError(RouterCiError):
    """A subprocess exited non-zero; its exit code is passed through unchanged."""

    def __init__(self, message: str, *, returncode: int, details: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.details = details
        self.exit_code = returncode or 1


class ConfigError(RouterCiError):
    """A configured value is missing or malformed."""


class ContextResolutionError(RouterCiError):
    """Commit or ref could not be determined for this run."""


class MissingContextError(ContextResolutionError):
    """Required CI variables are absent, empty or malformed."""


class VCSQueryError(ContextResolutionError):
    """Local version-control state could not be read."""

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class UnsupportedArchitectureError(RouterCiError):
    """No toolchain download is mapped for the requested CPU architecture."""


class ArtifactMissingError(RouterCiError):
    """A stage copies a path that the source stage does not produce."""


class UnknownTargetError(RouterCiError):
    """The requested build target is not a declared stage."""


class BuildArgumentError(RouterCiError):
    """A build argument override is undeclared or has an invalid value."""


class PushAuthError(CommandError):
    """The registry rejected a push for authentication or authorization reasons."""


def require_env(name: str, env: Mapping[str, str] | None = None) -> str:
    """Return a required environment variable or raise a clear error."""
    source = os.environ if env is None else env
    value = source.get(name)
    if value is None or value == "":
        raise MissingContextError(f"Missing required environment variable: {name}")
    return value


def optional_env(name: str, default: str = "", env: Mapping[str, str] | None = None) -> str:
    """Return an environment variable with a fallback default."""
    source = os.environ if env is None else env
    return source.get(name, default)


def run_cmd(
    args: Sequence[str],
    *,
    capture_output: bool = True,
    cwd: str | None = None,
    input_text: str | None = None,
    extra_env: Mapping[str, str] | None = None,
) -> str:
    """Run a command and return stdout, raising a readable error on failure."""
    env = None
    if extra_env:
        env = {**os.environ, **extra_env}

    try:
        result = subprocess.run(
            list(args),
            check=True,
            text=True,
            capture_output=capture_output,
            cwd=cwd,
            input=input_text,
            env=env,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"Command not found: {args[0]}", returncode=127) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        stdout = (exc.stdout or "").strip()
        details = stderr or stdout
        message = f"Command failed: {' '.join(args)}"
        if details:
            message = f"{message}\n{details}"
        raise CommandError(message, returncode=exc.returncode, details=details) from exc

    if not capture_output:
        return ""
    return result.stdout


def write_github_outputs(values: Mapping[str, str], env: Mapping[str, str] | None = None) -> None:
    """
    Write step outputs for GitHub Actions.

    GitHub provides a file path in `GITHUB_OUTPUT`; writing `name=value` lines
    there makes that value available to later steps in the same job.
    """
    output_file = require_env("GITHUB_OUTPUT", env)
    with open(output_file, "a", encoding="utf-8") as handle:
        for key, value in values.items():
            handle.write(f"{key}={value}\n")


def normalize_owner(owner: str) -> str:
    """
    Normalize a registry host or namespace for container image paths.

    Here, "normalize" means converting to lowercase.
    Example: `IBM` becomes `ibm`, so image refs are consistent:
    `ghcr.io/ibm/...`.
    """
    return owner.lower()
