"""
Script: router_ci/publish.py
What: Pushes the built router image under every resolved tag.
Doing: Detects the run context, resolves qualified tags, checks the push gate, then runs `docker tag` / `docker push`.
Why: Pull-request and feature-branch images must never reach the registry.
Goal: Publish only direct pushes to the primary branch, and stop at the first failure.
"""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass
from typing import Callable, Sequence

from router_ci.common import CommandError, PushAuthError, run_cmd
from router_ci.config import load_settings
from router_ci.context import ExecutionContext, Mode, detect_context
from router_ci.tags import format_tags, resolve_tags


# Registry responses that mean credentials are missing or lack permission.
AUTH_FAILURE_RE = re.compile(
    r"unauthorized|authentication required|denied|forbidden|no basic auth credentials",
    re.IGNORECASE,
)

CommandRunner = Callable[[Sequence[str]], str]


class PushSkipped(Exception):
    """The push gate is closed for this run; nothing was pushed."""


@dataclass(frozen=True)
class ImageArtifact:
    target: str
    local_name: str
    tags: tuple[str, ...]


def should_push(ctx: ExecutionContext, primary_branch: str) -> bool:
    """True only for a CI `push` event on the primary branch."""
    return (
        ctx.mode is Mode.CI
        and not ctx.is_pull_request
        and ctx.event == "push"
        and ctx.ref_type == "branch"
        and ctx.ref == primary_branch
    )


def check_push_gate(ctx: ExecutionContext, primary_branch: str) -> None:
    """Raise `PushSkipped` with the reason when this run must not push."""
    if should_push(ctx, primary_branch):
        return
    if ctx.mode is Mode.LOCAL:
        reason = "local runs never push"
    elif ctx.is_pull_request:
        reason = f"pull request build (ref {ctx.ref})"
    else:
        reason = (
            f"event={ctx.event or '<unknown>'} ref_type={ctx.ref_type or '<unknown>'} "
            f"ref={ctx.ref or '<none>'}; only pushes to {primary_branch} are published"
        )
    raise PushSkipped(f"Skipping push: {reason}")


def _docker(args: Sequence[str]) -> str:
    return run_cmd(["docker", *args])


def push_image(artifact: ImageArtifact, docker: CommandRunner | None = None) -> None:
    """Tag and push each tag in order; the first failure ends the push."""
    docker = docker or _docker
    print(f"Pushing {artifact.target} image {artifact.local_name} as {len(artifact.tags)} tag(s)")
    for tag in artifact.tags:
        docker(["tag", artifact.local_name, tag])
        try:
            docker(["push", tag])
        except CommandError as exc:
            if AUTH_FAILURE_RE.search(exc.details or str(exc)):
                raise PushAuthError(
                    f"Registry rejected push of {tag}: {exc.details or exc}",
                    returncode=exc.returncode,
                    details=exc.details,
                ) from exc
            raise
        print(f"Pushed {tag}")


def main(argv: list[str] | None = None) -> None:
    settings = load_settings()
    ctx = detect_context(os.environ)
    tags = resolve_tags(ctx, settings.image_repo)
    print(f"Tags to push: {format_tags(tags)}")

    try:
        check_push_gate(ctx, settings.primary_branch)
    except PushSkipped as skipped:
        print(skipped)
        return

    artifact = ImageArtifact(target=settings.target, local_name=settings.image_name, tags=tags)
    push_image(artifact)


if __name__ == "__main__":
    main(sys.argv[1:])
