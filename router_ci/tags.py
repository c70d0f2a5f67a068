"""
Script: router_ci/tags.py
What: Computes the container image tags for the current commit/ref.
Doing: Maps an execution context (and optional registry qualifier) to an ordered, deduplicated tag list.
Why: Replaces the separate Travis and GitHub tag shell scripts with one rule set.
Goal: Same inputs always give the same tags, commit tag first.
"""

from __future__ import annotations

import os
import re
import sys

from router_ci.common import optional_env, write_github_outputs
from router_ci.context import CiFlavor, ExecutionContext, SHORT_SHA_LENGTH, detect_context


UNSAFE_TAG_CHARS_RE = re.compile(r"[^A-Za-z0-9_.-]+")
MAX_TAG_LENGTH = 128
# Leave room for `.<commit>` on the composite tag.
MAX_REF_LENGTH = MAX_TAG_LENGTH - SHORT_SHA_LENGTH - 1


def sanitize_ref(ref: str) -> str:
    """Turn a branch/tag name into a registry-valid tag component."""
    # Replace unsupported chars with '-' but keep case, so `PR-17` stays `PR-17`.
    safe = UNSAFE_TAG_CHARS_RE.sub("-", ref).strip("-.")
    return safe[:MAX_REF_LENGTH].rstrip("-.")


def ref_is_taggable(ctx: ExecutionContext) -> bool:
    """
    True when the ref (and the composite ref.commit) should be published.

    GitHub PR merge refs like `42/merge` are throwaway; Travis refs, including
    the synthesized `PR-<n>`, are always kept.
    """
    if not ctx.ref:
        return False
    return not (ctx.ci_flavor is CiFlavor.GITHUB_ACTIONS and ctx.is_merge_ref)


def unique_append(accum: list[str], candidate: str) -> None:
    if candidate and candidate not in accum:
        accum.append(candidate)


def resolve_tags(ctx: ExecutionContext, qualifier: str | None = None) -> tuple[str, ...]:
    """Return tags for this context: commit, then ref, then `ref.commit`."""
    raw_tags = [ctx.commit]
    if ref_is_taggable(ctx):
        ref = sanitize_ref(ctx.ref)
        if ref:
            raw_tags.append(ref)
            raw_tags.append(f"{ref}.{ctx.commit}")

    repo_bit = f"{qualifier}:" if qualifier else ""
    tags: list[str] = []
    for tag in raw_tags:
        unique_append(tags, f"{repo_bit}{tag}")
    return tuple(tags)


def format_tags(tags: tuple[str, ...]) -> str:
    return " ".join(tags)


def main(argv: list[str] | None = None) -> None:
    # Optional first argument is a repository, e.g. `quay.io/foo/bar`.
    argv = list(argv or [])
    qualifier = argv[0] if argv else None

    ctx = detect_context(os.environ)
    tags = resolve_tags(ctx, qualifier)
    line = format_tags(tags)

    # stdout carries only the tag list so callers can capture it directly.
    print(line)
    if optional_env("GITHUB_OUTPUT"):
        write_github_outputs({"tags": line})

    print(
        f"Resolved {len(tags)} tag(s) in {ctx.mode.value} mode "
        f"(flavor={ctx.ci_flavor.value}, ref={ctx.ref or '<none>'})",
        file=sys.stderr,
    )


if __name__ == "__main__":
    main(sys.argv[1:])
