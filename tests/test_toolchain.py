from __future__ import annotations

import unittest

from router_ci.common import UnsupportedArchitectureError
from router_ci.toolchain import protoc_install_script, resolve_protoc_download


class ProtocDownloadTests(unittest.TestCase):
    def test_x86_64_descriptor(self) -> None:
        descriptor = resolve_protoc_download("x86_64", "26.0")
        self.assertEqual(descriptor.asset, "protoc-26.0-linux-x86_64.zip")
        self.assertEqual(
            descriptor.url,
            "https://github.com/protocolbuffers/protobuf/releases/download/"
            "v26.0/protoc-26.0-linux-x86_64.zip",
        )

    def test_s390x_uses_release_asset_name(self) -> None:
        descriptor = resolve_protoc_download("s390x", "26.0")
        self.assertEqual(descriptor.asset, "protoc-26.0-linux-s390_64.zip")
        self.assertTrue(descriptor.url.endswith("/v26.0/protoc-26.0-linux-s390_64.zip"))

    def test_descriptors_are_distinct(self) -> None:
        x86 = resolve_protoc_download("x86_64", "26.0")
        s390 = resolve_protoc_download("s390x", "26.0")
        self.assertNotEqual(x86.url, s390.url)

    def test_unmapped_architecture_fails(self) -> None:
        for architecture in ("aarch64", "arm64", "", "X86_64"):
            with self.assertRaises(UnsupportedArchitectureError):
                resolve_protoc_download(architecture, "26.0")


class InstallScriptTests(unittest.TestCase):
    def test_script_has_one_arm_per_architecture_and_failing_default(self) -> None:
        script = protoc_install_script()
        self.assertIn('x86_64) PROTOC_URL="', script)
        self.assertIn('s390x) PROTOC_URL="', script)
        self.assertIn("exit 1", script)
        # Version stays a shell variable for the ARG to fill in.
        self.assertIn("protoc-${PROTOC_VERSION}-linux-x86_64.zip", script)


if __name__ == "__main__":
    unittest.main()
