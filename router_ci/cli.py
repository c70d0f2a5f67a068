from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable, Mapping
from typing import TextIO

from router_ci.common import RouterCiError


CommandFn = Callable[[list[str]], None]

COMMAND_DESCRIPTIONS = {
    "resolve-tags": "Print the image tags for this commit/ref (optional arg: registry qualifier).",
    "render-dockerfile": "Print or write the Dockerfile rendered from the declared stages.",
    "build": "Build an image target with BuildKit and inline layer cache.",
    "push": "Push the image under every resolved tag (primary-branch pushes only).",
    "help": "List commands and build targets.",
}


def command_map() -> dict[str, CommandFn]:
    """
    Map CLI command names to Python entry functions.

    Each value is a `main(argv)` function from one workflow helper module.
    """
    from router_ci.build import main as build
    from router_ci.publish import main as push
    from router_ci.stages import main as render_dockerfile
    from router_ci.tags import main as resolve_tags

    return {
        "resolve-tags": resolve_tags,
        "render-dockerfile": render_dockerfile,
        "build": build,
        "push": push,
        "help": show_help,
    }


def help_entries() -> list[tuple[str, list[tuple[str, str]]]]:
    """Sections of (name, description) pairs shown by `help`."""
    from router_ci.stages import ROUTER_PIPELINE

    commands = [(name, COMMAND_DESCRIPTIONS[name]) for name in COMMAND_DESCRIPTIONS]
    final_images = {stage.name for stage in ROUTER_PIPELINE.terminal_stages()}
    targets = []
    for stage in ROUTER_PIPELINE.stages:
        description = stage.description or stage.name
        marker = " [default image]" if stage.name in final_images else ""
        targets.append((stage.name, f"{description} ({stage.output}){marker}"))
    return [("Commands", commands), ("Build Targets", targets)]


def supports_rich_help(stream: TextIO, env: Mapping[str, str]) -> bool:
    """Grouped, coloured help needs a terminal; `NO_COLOR` or `TERM=dumb` turns it off."""
    if "NO_COLOR" in env or env.get("TERM") == "dumb":
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def format_help(sections: list[tuple[str, list[tuple[str, str]]]], *, rich: bool) -> str:
    width = max(len(name) for _title, entries in sections for name, _desc in entries) + 2
    if rich:
        lines = ["", "Usage:", "  python3 -m router_ci.cli \033[36m<command>\033[0m [args...]"]
        for title, entries in sections:
            lines.append("")
            lines.append(f"\033[1m{title}\033[0m")
            for name, description in entries:
                lines.append(f"  \033[36m{name:<{width}}\033[0m {description}")
        return "\n".join(lines) + "\n"

    # Plain fallback: one flat list, first occurrence of each name only.
    lines = ["", "Usage:", "  python3 -m router_ci.cli <command> [args...]", ""]
    seen = set()
    for _title, entries in sections:
        for name, description in entries:
            if name in seen:
                continue
            seen.add(name)
            lines.append(f"{name:<{width}} {description}")
    lines.append("")
    lines.append("NOTE: Grouped help output with headers needs a terminal (and NO_COLOR unset).")
    return "\n".join(lines) + "\n"


def show_help(argv: list[str] | None = None, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    rich = supports_rich_help(stream, os.environ)
    stream.write(format_help(help_entries(), rich=rich))


def build_parser(commands: Mapping[str, CommandFn]) -> argparse.ArgumentParser:
    """Build argument parser with one positional command choice."""
    parser = argparse.ArgumentParser(
        prog="python3 -m router_ci.cli",
        description="Run one router image workflow command.",
    )
    parser.add_argument("command", choices=sorted(commands.keys()))
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the command.")
    return parser


def run_command(command: str, commands: Mapping[str, CommandFn], argv: list[str] | None = None) -> None:
    """
    Run one registered command.

    `commands` is passed in to keep this function easy to test.
    """
    commands[command](list(argv or []))


def main(argv: list[str] | None = None) -> None:
    # Build command registry once so parser and dispatcher use the same keys.
    commands = command_map()
    parser = build_parser(commands)
    args = parser.parse_args(argv)

    try:
        run_command(args.command, commands, args.args)
    except RouterCiError as exc:
        # Keep failures short and readable in workflow logs.
        print(str(exc), file=sys.stderr)
        # A failed subprocess keeps its own exit code.
        raise SystemExit(exc.exit_code) from exc


if __name__ == "__main__":
    main()
