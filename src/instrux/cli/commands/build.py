"""
instrux build command.

SUMMARY: Build an agent's instruction file (or every agent with --all)
"""

from __future__ import annotations

import argparse
import sys
from typing import List

from instrux.cli import OutputFormatter, add_standard_flags, get_repo_root
from instrux.core.engine import BuildResult, InstruxEngine
from instrux.core.exceptions import InstruxError

SUMMARY = "Build an agent's instruction file (or every agent with --all)"


def register_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", nargs="?", help="Agent name (directory under the agents directory)")
    parser.add_argument("--all", action="store_true", help="Build every agent with a valid config")
    parser.add_argument(
        "--strict-tags",
        action="store_true",
        help="Fail when a tag directive matches no files",
    )
    add_standard_flags(parser)


def _print_result(formatter: OutputFormatter, name: str, result: BuildResult) -> None:
    formatter.text(f"✓ Built {name} → {result.output_path}")
    formatter.text_kv("Mode", result.mode)
    formatter.text_kv("Files", result.files_included)
    if result.files_skipped:
        formatter.text_kv("Skipped", result.files_skipped)
    if result.tags_used:
        formatter.text_kv("Tags", ", ".join(result.tags_used))
    formatter.text_kv("Size", f"{result.content_length} chars")
    formatter.text_kv("Hash", result.content_hash)
    for w in result.warnings:
        formatter.text(f"  ⚠  {w}")


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))
    strict_tags = True if getattr(args, "strict_tags", False) else None

    try:
        engine = InstruxEngine(get_repo_root(args))

        if args.all:
            names: List[str] = []
            for agent in engine.list_agents():
                if agent.config is None:
                    if not formatter.json_mode:
                        formatter.text(f"⚠  Skipping {agent.name} (invalid or missing agent config)")
                    continue
                names.append(agent.name)
            if not names and not formatter.json_mode:
                formatter.text("No agents found.")
        elif args.name:
            names = [args.name]
        else:
            formatter.error("Agent name required. Usage: instrux build <name> (or --all)", error_code="missing_name")
            return 2

        results = []
        for name in names:
            result = engine.build(name, strict_tags=strict_tags)
            results.append({"agent": name, **result.to_dict()})
            if not formatter.json_mode:
                _print_result(formatter, name, result)

        if formatter.json_mode:
            formatter.json_output({"status": "success", "builds": results})
        return 0
    except InstruxError as e:
        formatter.error(e, error_code="build_error")
        return 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
