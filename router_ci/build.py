"""
Script: router_ci/build.py
What: Builds one target of the router image with BuildKit.
Doing: Checks the host architecture, renders the Dockerfile, then runs `docker build` and `docker images`.
Why: Keeps the build invocation in one place instead of duplicating it in Makefile and workflow YAML.
Goal: Produce the local image for the configured target with inline layer cache enabled.
"""

from __future__ import annotations

import argparse
import sys

from router_ci.common import optional_env, run_cmd
from router_ci.config import BuildSettings, load_settings
from router_ci.stages import BuildPipeline, build_pipeline, render_dockerfile
from router_ci.toolchain import host_architecture, resolve_protoc_download


BUILDKIT_ENV = {"DOCKER_BUILDKIT": "1"}


def docker_build_command(
    *,
    target: str,
    image_name: str,
    build_args: dict[str, str],
    build_context: str,
    extra_tags: tuple[str, ...] = (),
) -> list[str]:
    """
    Assemble the `docker build` argv.

    The Dockerfile is read from stdin (`-f -`), so the file that is built is
    always the one rendered from the declared stages.
    """
    command = [
        "docker",
        "build",
        "--target",
        target,
        "--progress",
        "plain",
        # Embed cache metadata in the image so later builds can use it with --cache-from.
        "--build-arg",
        "BUILDKIT_INLINE_CACHE=1",
    ]
    for name, value in build_args.items():
        command.extend(["--build-arg", f"{name}={value}"])
    command.extend(["--tag", image_name])
    for tag in extra_tags:
        command.extend(["--tag", tag])
    command.extend(["-f", "-", build_context])
    return command


def build_image(
    settings: BuildSettings,
    pipeline: BuildPipeline,
    *,
    target: str,
    architecture: str,
) -> None:
    # Fail before starting the builder if protoc has no release for this machine.
    descriptor = resolve_protoc_download(architecture, settings.protoc_version)
    print(f"Toolchain download for {architecture}: {descriptor.url}")

    build_args = pipeline.resolve_args(settings.build_arg_overrides())
    dockerfile = render_dockerfile(pipeline, target, build_args)
    command = docker_build_command(
        target=target,
        image_name=settings.image_name,
        build_args=build_args,
        build_context=settings.build_context,
    )

    print(f"Building target {target} as {settings.image_name}")
    run_cmd(command, capture_output=False, input_text=dockerfile, extra_env=BUILDKIT_ENV)
    run_cmd(["docker", "images"], capture_output=False)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="python3 -m router_ci.cli build",
        description="Build one image target from the declared stages.",
    )
    parser.add_argument("target", nargs="?", help="Build target (defaults to IMAGE_TARGET).")
    args = parser.parse_args(argv)

    settings = load_settings()
    pipeline = build_pipeline(settings.grpc_port)
    target = args.target or settings.target
    # Resolve early so an unknown target fails before any other work.
    pipeline.stage(target)

    build_image(
        settings,
        pipeline,
        target=target,
        architecture=optional_env("BUILD_ARCH") or host_architecture(),
    )


if __name__ == "__main__":
    main(sys.argv[1:])
