from __future__ import annotations

import unittest

from router_ci.common import CommandError, MissingContextError, VCSQueryError
from router_ci.context import CiFlavor, ExecutionContext, Mode, detect_context


def fake_git(*, sha: str, branch: str):
    # `--abbrev-ref` asks for the branch; every other rev-parse here asks for the hash.
    def _git(args):
        return branch if "--abbrev-ref" in args else sha

    return _git


class LocalContextTests(unittest.TestCase):
    def test_reads_commit_and_branch_from_git(self) -> None:
        ctx = detect_context({}, git=fake_git(sha="abc1234\n", branch="main\n"))
        self.assertEqual(ctx.mode, Mode.LOCAL)
        self.assertEqual(ctx.ci_flavor, CiFlavor.NONE)
        self.assertEqual(ctx.commit, "abc1234")
        self.assertEqual(ctx.ref, "main")

    def test_detached_head_has_empty_ref(self) -> None:
        ctx = detect_context({}, git=fake_git(sha="abc1234", branch="HEAD"))
        self.assertEqual(ctx.ref, "")

    def test_lengthened_short_hash_is_truncated(self) -> None:
        ctx = detect_context({}, git=fake_git(sha="abc12345f", branch="main"))
        self.assertEqual(ctx.commit, "abc1234")

    def test_git_failure_raises_vcs_error(self) -> None:
        def _git(_args):
            raise CommandError("Command failed: git rev-parse", returncode=128)

        with self.assertRaises(VCSQueryError) as caught:
            detect_context({}, git=_git)
        self.assertEqual(caught.exception.exit_code, 128)


class GithubContextTests(unittest.TestCase):
    def test_branch_push(self) -> None:
        ctx = detect_context(
            {
                "CI": "true",
                "GITHUB_ACTIONS": "true",
                "GITHUB_SHA": "ABCDEF1234567890",
                "GITHUB_REF_NAME": "main",
                "GITHUB_REF": "refs/heads/main",
                "GITHUB_EVENT_NAME": "push",
            }
        )
        self.assertEqual(ctx.ci_flavor, CiFlavor.GITHUB_ACTIONS)
        self.assertEqual(ctx.commit, "abcdef1")
        self.assertEqual(ctx.ref, "main")
        self.assertEqual(ctx.ref_type, "branch")
        self.assertFalse(ctx.is_merge_ref)
        self.assertFalse(ctx.is_pull_request)

    def test_branch_containing_merge_is_not_a_merge_ref(self) -> None:
        ctx = detect_context(
            {
                "CI": "true",
                "GITHUB_SHA": "abcdef1234567",
                "GITHUB_REF_NAME": "release/merge-train",
                "GITHUB_REF": "refs/heads/release/merge-train",
                "GITHUB_EVENT_NAME": "push",
            }
        )
        self.assertFalse(ctx.is_merge_ref)
        self.assertEqual(ctx.ref, "release/merge-train")

    def test_pull_request_merge_ref(self) -> None:
        ctx = detect_context(
            {
                "CI": "true",
                "GITHUB_SHA": "9f8e7d6c5b4a",
                "GITHUB_REF_NAME": "42/merge",
                "GITHUB_REF": "refs/pull/42/merge",
                "GITHUB_EVENT_NAME": "pull_request",
            }
        )
        self.assertTrue(ctx.is_merge_ref)
        self.assertTrue(ctx.is_pull_request)
        self.assertEqual(ctx.pr_number, 42)
        self.assertEqual(ctx.ref_type, "")

    def test_missing_ref_name_fails(self) -> None:
        with self.assertRaises(MissingContextError):
            detect_context({"CI": "true", "GITHUB_SHA": "9f8e7d6c5b4a", "GITHUB_REF_NAME": ""})

    def test_short_sha_fails(self) -> None:
        with self.assertRaises(MissingContextError):
            detect_context({"CI": "true", "GITHUB_SHA": "9f8e", "GITHUB_REF_NAME": "main"})


class TravisContextTests(unittest.TestCase):
    def test_branch_build(self) -> None:
        ctx = detect_context(
            {
                "CI": "true",
                "TRAVIS": "true",
                "TRAVIS_COMMIT": "9f8e7d6c5b4a",
                "TRAVIS_PULL_REQUEST": "false",
                "TRAVIS_BRANCH": "main",
                "TRAVIS_EVENT_TYPE": "push",
            }
        )
        self.assertEqual(ctx.ci_flavor, CiFlavor.TRAVIS)
        self.assertEqual(ctx.ref, "main")
        self.assertEqual(ctx.ref_type, "branch")
        self.assertEqual(ctx.event, "push")

    def test_tag_build_uses_tag_name(self) -> None:
        ctx = detect_context(
            {
                "CI": "true",
                "TRAVIS_COMMIT": "9f8e7d6c5b4a",
                "TRAVIS_PULL_REQUEST": "false",
                "TRAVIS_BRANCH": "v1.0.0",
                "TRAVIS_TAG": "v1.0.0",
            }
        )
        self.assertEqual(ctx.ref, "v1.0.0")
        self.assertEqual(ctx.ref_type, "tag")

    def test_pull_request_synthesizes_ref(self) -> None:
        ctx = detect_context(
            {
                "CI": "true",
                "TRAVIS_COMMIT": "9f8e7d6c5b4a",
                "TRAVIS_PULL_REQUEST": "17",
                "TRAVIS_BRANCH": "main",
            }
        )
        self.assertEqual(ctx.ref, "PR-17")
        self.assertTrue(ctx.is_pull_request)
        self.assertEqual(ctx.pr_number, 17)
        self.assertEqual(ctx.event, "pull_request")

    def test_malformed_pull_request_value_fails(self) -> None:
        with self.assertRaises(MissingContextError):
            detect_context(
                {"CI": "true", "TRAVIS_COMMIT": "9f8e7d6c5b4a", "TRAVIS_PULL_REQUEST": "maybe"}
            )


class DetectorSelectionTests(unittest.TestCase):
    def test_ci_without_known_variables_fails(self) -> None:
        with self.assertRaises(MissingContextError):
            detect_context({"CI": "true"})

    def test_empty_ci_value_still_means_ci(self) -> None:
        with self.assertRaises(MissingContextError):
            detect_context({"CI": ""})

    def test_context_rejects_non_hex_commit(self) -> None:
        with self.assertRaises(MissingContextError):
            ExecutionContext(mode=Mode.LOCAL, ci_flavor=CiFlavor.NONE, commit="zzzzzzz")


if __name__ == "__main__":
    unittest.main()
