"""
Script: router_ci/context.py
What: Works out where this run is happening and which commit/ref it builds.
Doing: Reads git state on a workstation, or the GitHub Actions / Travis variables in CI.
Why: Tag names and the push decision both depend on the same facts about the run.
Goal: Produce one immutable `ExecutionContext` per invocation, or fail loudly.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from router_ci.common import (
    CommandError,
    MissingContextError,
    VCSQueryError,
    optional_env,
    require_env,
    run_cmd,
)


SHORT_SHA_LENGTH = 7
SHORT_SHA_RE = re.compile(r"^[0-9a-f]{7}$")
PR_NUMBER_RE = re.compile(r"^[0-9]+$")
# GitHub checks out pull requests as `<number>/merge`.
MERGE_REF_RE = re.compile(r"^([0-9]+)/merge$")

GitRunner = Callable[[Sequence[str]], str]


class Mode(enum.Enum):
    LOCAL = "local"
    CI = "ci"


class CiFlavor(enum.Enum):
    NONE = "none"
    GITHUB_ACTIONS = "github-actions"
    TRAVIS = "travis"


@dataclass(frozen=True)
class ExecutionContext:
    mode: Mode
    ci_flavor: CiFlavor
    commit: str
    ref: str = ""
    is_pull_request: bool = False
    pr_number: int | None = None
    is_merge_ref: bool = False
    event: str = ""
    ref_type: str = ""

    def __post_init__(self) -> None:
        # Full SHAs are accepted and truncated; the stored commit is always the short form.
        object.__setattr__(self, "commit", short_commit(self.commit, "commit"))


def short_commit(sha: str, source: str) -> str:
    """Truncate a full SHA to the fixed short width, rejecting malformed values."""
    commit = sha.strip().lower()[:SHORT_SHA_LENGTH]
    if not SHORT_SHA_RE.match(commit):
        raise MissingContextError(f"{source} does not look like a commit SHA: {sha!r}")
    return commit


def _git(args: Sequence[str]) -> str:
    return run_cmd(["git", *args])


def detect_local(git: GitRunner | None = None) -> ExecutionContext:
    """Read commit and branch from the local checkout."""
    git = git or _git
    try:
        commit = git(["rev-parse", f"--short={SHORT_SHA_LENGTH}", "HEAD"]).strip()
        branch = git(["rev-parse", "--abbrev-ref", "HEAD"]).strip()
    except CommandError as exc:
        raise VCSQueryError(
            f"Could not read git state (is this a repository with at least one commit?)\n{exc}",
            exit_code=exc.exit_code,
        ) from exc

    # `--abbrev-ref` answers `HEAD` on a detached checkout; there is no branch to tag.
    if branch == "HEAD":
        branch = ""

    # git may lengthen the short hash to keep it unambiguous.
    commit = short_commit(commit, "git rev-parse")
    return ExecutionContext(mode=Mode.LOCAL, ci_flavor=CiFlavor.NONE, commit=commit, ref=branch)


def _github_ref_type(env: Mapping[str, str]) -> str:
    ref_type = optional_env("GITHUB_REF_TYPE", "", env)
    if ref_type:
        return ref_type
    full_ref = optional_env("GITHUB_REF", "", env)
    if full_ref.startswith("refs/heads/"):
        return "branch"
    if full_ref.startswith("refs/tags/"):
        return "tag"
    return ""


def detect_github_actions(env: Mapping[str, str]) -> ExecutionContext:
    commit = short_commit(require_env("GITHUB_SHA", env), "GITHUB_SHA")
    ref = require_env("GITHUB_REF_NAME", env)
    event = optional_env("GITHUB_EVENT_NAME", "", env)
    match = MERGE_REF_RE.fullmatch(ref)
    is_merge_ref = match is not None

    is_pull_request = event.startswith("pull_request")
    pr_number = None
    if match and is_pull_request:
        pr_number = int(match.group(1))

    return ExecutionContext(
        mode=Mode.CI,
        ci_flavor=CiFlavor.GITHUB_ACTIONS,
        commit=commit,
        ref=ref,
        is_pull_request=is_pull_request,
        pr_number=pr_number,
        is_merge_ref=is_merge_ref,
        event=event,
        ref_type=_github_ref_type(env),
    )


def detect_travis(env: Mapping[str, str]) -> ExecutionContext:
    commit = short_commit(require_env("TRAVIS_COMMIT", env), "TRAVIS_COMMIT")
    pull_request = require_env("TRAVIS_PULL_REQUEST", env).strip()

    if pull_request == "false":
        tag = optional_env("TRAVIS_TAG", "", env)
        if tag:
            ref, ref_type = tag, "tag"
        else:
            ref, ref_type = require_env("TRAVIS_BRANCH", env), "branch"
        return ExecutionContext(
            mode=Mode.CI,
            ci_flavor=CiFlavor.TRAVIS,
            commit=commit,
            ref=ref,
            event=optional_env("TRAVIS_EVENT_TYPE", "push", env),
            ref_type=ref_type,
        )

    if not PR_NUMBER_RE.fullmatch(pull_request):
        raise MissingContextError(
            f"TRAVIS_PULL_REQUEST must be 'false' or a number, got {pull_request!r}"
        )

    pr_number = int(pull_request)
    return ExecutionContext(
        mode=Mode.CI,
        ci_flavor=CiFlavor.TRAVIS,
        commit=commit,
        ref=f"PR-{pr_number}",
        is_pull_request=True,
        pr_number=pr_number,
        event=optional_env("TRAVIS_EVENT_TYPE", "pull_request", env),
    )


FlavorDetector = Callable[[Mapping[str, str]], ExecutionContext]


def _is_github_actions(env: Mapping[str, str]) -> bool:
    return env.get("GITHUB_ACTIONS") == "true" or "GITHUB_SHA" in env


def _is_travis(env: Mapping[str, str]) -> bool:
    return env.get("TRAVIS") == "true" or "TRAVIS_COMMIT" in env


# Checked in order; the first convention whose marker variables are present wins.
CI_DETECTORS: tuple[tuple[Callable[[Mapping[str, str]], bool], FlavorDetector], ...] = (
    (_is_github_actions, detect_github_actions),
    (_is_travis, detect_travis),
)


def detect_context(env: Mapping[str, str], git: GitRunner | None = None) -> ExecutionContext:
    """
    Build the execution context for this run.

    `CI` unset means a developer workstation, where git is queried directly.
    Any value of `CI` (even empty) selects CI mode, matching `${CI+x}` in shell.
    """
    if "CI" not in env:
        return detect_local(git)

    for matches, detect in CI_DETECTORS:
        if matches(env):
            return detect(env)

    raise MissingContextError(
        "CI is set but neither GitHub Actions (GITHUB_SHA) nor Travis (TRAVIS_COMMIT) "
        "variables are present"
    )
