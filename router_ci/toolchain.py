"""
Script: router_ci/toolchain.py
What: Maps a CPU architecture to the protoc release archive to install.
Doing: Looks the architecture up in a fixed table and builds the download URL.
Why: The shell version left the URL unset for unknown architectures and carried on.
Goal: Either return a complete download descriptor or fail the build.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass

from router_ci.common import UnsupportedArchitectureError


PROTOC_RELEASE_BASE_URL = "https://github.com/protocolbuffers/protobuf/releases/download"

# `uname -m` value -> protoc release asset suffix.
PROTOC_ASSET_ARCH = {
    "x86_64": "x86_64",
    "s390x": "s390_64",
}


@dataclass(frozen=True)
class DownloadDescriptor:
    architecture: str
    asset: str
    url: str


def supported_architectures() -> tuple[str, ...]:
    return tuple(sorted(PROTOC_ASSET_ARCH))


def resolve_protoc_download(architecture: str, version: str) -> DownloadDescriptor:
    """Return the protoc archive for `architecture`, or raise if none is published."""
    asset_arch = PROTOC_ASSET_ARCH.get(architecture)
    if asset_arch is None:
        raise UnsupportedArchitectureError(
            f"No protoc download for architecture {architecture!r}; "
            f"supported: {', '.join(supported_architectures())}"
        )
    asset = f"protoc-{version}-linux-{asset_arch}.zip"
    return DownloadDescriptor(
        architecture=architecture,
        asset=asset,
        url=f"{PROTOC_RELEASE_BASE_URL}/v{version}/{asset}",
    )


def host_architecture() -> str:
    return platform.machine()


def protoc_install_script(version_expr: str = "${PROTOC_VERSION}") -> str:
    """
    Shell snippet that installs protoc inside the toolchain stage.

    The `case` arms come from `PROTOC_ASSET_ARCH`, and the default arm exits
    non-zero so an unmapped builder architecture fails the image build.
    """
    arms = []
    for architecture in supported_architectures():
        descriptor = resolve_protoc_download(architecture, version_expr)
        # Double quotes so the shell still expands ${PROTOC_VERSION}.
        arms.append(f'      {architecture}) PROTOC_URL="{descriptor.url}" ;;')
    arms.append('      *) echo "Unsupported architecture: $(uname -m)" >&2; exit 1 ;;')

    lines = [
        "cd /tmp && \\",
        '    case "$(uname -m)" in \\',
        *(f"{arm} \\" for arm in arms),
        "    esac && \\",
        '    curl -fL -o protoc.zip "${PROTOC_URL}" && \\',
        "    unzip protoc.zip -d /usr/local && rm protoc.zip",
    ]
    return "\n".join(lines)
