"""
Script: router_ci/stages.py
What: Declares the multi-stage router image build as data and renders it as a Dockerfile.
Doing: Validates stage ordering, copy sources and build-argument values, then writes Dockerfile text.
Why: Version pins and stage wiring were free text; a typo only showed up halfway through a build.
Goal: Catch broken stage wiring before the container builder is invoked.
"""

from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from router_ci.common import (
    ArtifactMissingError,
    BuildArgumentError,
    RouterCiError,
    UnknownTargetError,
)
from router_ci.config import (
    DEFAULT_BASE_UBI_MINIMAL_IMAGE_TAG,
    DEFAULT_GRPC_PORT,
    DEFAULT_PROTOC_VERSION,
    IMAGE_TAG_RE,
    PROTOC_VERSION_RE,
    load_settings,
)
from router_ci.toolchain import protoc_install_script


OUTPUT_TOOLCHAIN = "toolchain"
OUTPUT_BINARY = "binary"
OUTPUT_IMAGE = "image"

ROUTER_BINARY_PATH = "/usr/local/cargo/bin/fmaas-router"
ROUTER_INSTALL_PATH = "/usr/local/bin/fmaas-router"
RUNTIME_UID = 2000

ARG_NAME_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")


@dataclass(frozen=True)
class BuildArgument:
    name: str
    default: str
    description: str
    pattern: str = r"^\S+$"

    def validate(self, value: str) -> str:
        if not re.fullmatch(self.pattern, value):
            raise BuildArgumentError(f"Invalid value for build argument {self.name}: {value!r}")
        return value


@dataclass(frozen=True)
class CopyInput:
    from_stage: str
    source: str
    destination: str


@dataclass(frozen=True)
class BuildStage:
    name: str
    base: str
    output: str
    args: tuple[str, ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    copies: tuple[CopyInput, ...] = ()
    # Raw Dockerfile instructions, rendered after ARG/ENV/COPY --from lines.
    instructions: tuple[str, ...] = ()
    artifact: str = ""
    description: str = ""


@dataclass(frozen=True)
class BuildPipeline:
    args: tuple[BuildArgument, ...]
    stages: tuple[BuildStage, ...]
    _by_name: dict[str, BuildStage] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_name", {stage.name: stage for stage in self.stages})

    def stage(self, name: str) -> BuildStage:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownTargetError(
                f"Unknown build target {name!r}; available: {', '.join(self.target_names())}"
            ) from None

    def target_names(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    def validate(self) -> None:
        """
        Check the pipeline is a well-formed DAG.

        - stage names are unique and each dependency is declared earlier
        - every `COPY --from` path is exactly the artifact the source stage produces
        - every ARG a stage consumes is declared globally
        """
        declared_args = {arg.name for arg in self.args}
        for arg in self.args:
            if not ARG_NAME_RE.fullmatch(arg.name):
                raise BuildArgumentError(f"Invalid build argument name: {arg.name!r}")
            arg.validate(arg.default)

        seen: dict[str, BuildStage] = {}
        for stage in self.stages:
            if stage.name in seen:
                raise RouterCiError(f"Duplicate stage name: {stage.name}")
            if stage.base in self._by_name and stage.base not in seen:
                raise RouterCiError(
                    f"Stage {stage.name} builds on {stage.base}, which is declared after it"
                )

            for arg_name in stage.args:
                if arg_name not in declared_args:
                    raise BuildArgumentError(
                        f"Stage {stage.name} uses undeclared build argument {arg_name}"
                    )

            for copy in stage.copies:
                source_stage = seen.get(copy.from_stage)
                if source_stage is None:
                    raise UnknownTargetError(
                        f"Stage {stage.name} copies from {copy.from_stage}, "
                        "which is not declared before it"
                    )
                # Exact path only: no searching other locations for the binary.
                if source_stage.output != OUTPUT_BINARY or source_stage.artifact != copy.source:
                    raise ArtifactMissingError(
                        f"Stage {stage.name} copies {copy.source} from {copy.from_stage}, "
                        f"but that stage produces {source_stage.artifact or 'no artifact'}"
                    )

            seen[stage.name] = stage

    def dependencies(self, stage: BuildStage) -> tuple[str, ...]:
        """Names of stages `stage` builds on directly (base image and copy sources)."""
        names = []
        if stage.base in self._by_name:
            names.append(stage.base)
        for copy in stage.copies:
            if copy.from_stage not in names:
                names.append(copy.from_stage)
        return tuple(names)

    def stages_for(self, target: str) -> tuple[BuildStage, ...]:
        """Stages needed to build `target`, in declaration order."""
        needed = set()
        pending = [self.stage(target).name]
        while pending:
            name = pending.pop()
            if name in needed:
                continue
            needed.add(name)
            pending.extend(self.dependencies(self._by_name[name]))
        return tuple(stage for stage in self.stages if stage.name in needed)

    def resolve_args(self, overrides: Mapping[str, str] | None = None) -> dict[str, str]:
        """Merge overrides over declared defaults, rejecting unknown names and bad values."""
        values = {arg.name: arg.default for arg in self.args}
        for name, value in (overrides or {}).items():
            if name not in values:
                raise BuildArgumentError(f"Undeclared build argument: {name}")
            values[name] = value
        for arg in self.args:
            arg.validate(values[arg.name])
        return values

    def terminal_stages(self) -> tuple[BuildStage, ...]:
        return tuple(stage for stage in self.stages if stage.output == OUTPUT_IMAGE)


def _banner(title: str) -> str:
    return f"## {title} ".ljust(80, "#")


def render_stage(stage: BuildStage) -> list[str]:
    lines = [_banner(stage.description or stage.name), f"FROM {stage.base} AS {stage.name}"]
    lines.extend(f"ARG {name}" for name in stage.args)
    if stage.args:
        lines.append("")
    for name, value in stage.env:
        lines.append(f"ENV {name}={value}")
    if stage.env:
        lines.append("")
    for copy in stage.copies:
        lines.append(f"COPY --from={copy.from_stage} {copy.source} {copy.destination}")
    if stage.copies:
        lines.append("")
    for instruction in stage.instructions:
        lines.append(instruction)
        lines.append("")
    return lines


def render_dockerfile(
    pipeline: BuildPipeline,
    target: str | None = None,
    overrides: Mapping[str, str] | None = None,
) -> str:
    """
    Render the pipeline (or just what `target` needs) as Dockerfile text.

    Resolved build-argument values become the global ARG defaults, so the
    rendered file builds the same way with or without `--build-arg`.
    """
    pipeline.validate()
    values = pipeline.resolve_args(overrides)
    stages = pipeline.stages_for(target) if target else pipeline.stages

    lines = [_banner("Global Args")]
    for arg in pipeline.args:
        lines.append(f"# {arg.description}")
        lines.append(f"ARG {arg.name}={values[arg.name]}")
    lines.append("")
    lines.append("")
    for stage in stages:
        lines.extend(render_stage(stage))
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"


GLOBAL_ARGS = (
    BuildArgument(
        name="BASE_UBI_MINIMAL_IMAGE_TAG",
        default=DEFAULT_BASE_UBI_MINIMAL_IMAGE_TAG,
        description="Tag of registry.access.redhat.com/ubi9/ubi-minimal used for the runtime image",
        pattern=IMAGE_TAG_RE.pattern,
    ),
    BuildArgument(
        name="PROTOC_VERSION",
        default=DEFAULT_PROTOC_VERSION,
        description="protoc release installed in the toolchain stage",
        pattern=PROTOC_VERSION_RE.pattern,
    ),
)


def build_pipeline(grpc_port: int = DEFAULT_GRPC_PORT) -> BuildPipeline:
    """The router image build: rust toolchain -> router binary -> ubi-minimal runtime."""
    toolchain = BuildStage(
        name="rust-builder",
        # Specific debian version so that compatible glibc version is used
        base="rust:1.77-bullseye",
        output=OUTPUT_TOOLCHAIN,
        args=("PROTOC_VERSION",),
        env=(("CARGO_REGISTRIES_CRATES_IO_PROTOCOL", "sparse"),),
        instructions=(
            # protoc is no longer bundled with the prost crate
            "RUN " + protoc_install_script(),
            "WORKDIR /usr/src",
            "COPY rust-toolchain.toml rust-toolchain.toml",
            "RUN rustup component add rustfmt",
        ),
        description="Rust builder",
    )
    router_builder = BuildStage(
        name="fmaas-router-builder",
        base=toolchain.name,
        output=OUTPUT_BINARY,
        artifact=ROUTER_BINARY_PATH,
        instructions=(
            "COPY proto proto\nCOPY fmaas-router fmaas-router",
            "WORKDIR /usr/src/fmaas-router",
            "RUN cargo install --path .",
        ),
        description="FMaaS Router builder",
    )
    release = BuildStage(
        name="router-release",
        base="registry.access.redhat.com/ubi9/ubi-minimal:${BASE_UBI_MINIMAL_IMAGE_TAG}",
        output=OUTPUT_IMAGE,
        copies=(CopyInput(router_builder.name, ROUTER_BINARY_PATH, ROUTER_INSTALL_PATH),),
        env=(("GRPC_PORT", str(grpc_port)),),
        instructions=(
            "WORKDIR /usr/src",
            "RUN microdnf install -y --disableplugin=subscription-manager shadow-utils && \\\n"
            "    microdnf clean all --disableplugin=subscription-manager && \\\n"
            f"    useradd -u {RUNTIME_UID} router -g 0",
            "# Run as non-root user by default\n"
            f"USER {RUNTIME_UID}",
            "EXPOSE ${GRPC_PORT}",
            'CMD ["fmaas-router"]',
        ),
        description="Final FMaaS Router image",
    )
    return BuildPipeline(args=GLOBAL_ARGS, stages=(toolchain, router_builder, release))


ROUTER_PIPELINE = build_pipeline()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="python3 -m router_ci.cli render-dockerfile",
        description="Print the Dockerfile for the declared build stages.",
    )
    parser.add_argument("target", nargs="?", help="Only render the stages this target needs.")
    parser.add_argument("--output", help="Write to this path instead of stdout.")
    args = parser.parse_args(argv)

    settings = load_settings()
    pipeline = build_pipeline(settings.grpc_port)
    text = render_dockerfile(pipeline, args.target, settings.build_arg_overrides())

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding="utf-8")
        print(f"Wrote {output_path}")
    else:
        sys.stdout.write(text)


if __name__ == "__main__":
    main(sys.argv[1:])
