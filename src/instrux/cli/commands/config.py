"""
instrux config command.

SUMMARY: Show an agent's resolved configuration
"""

from __future__ import annotations

import argparse
import sys

from instrux.cli import OutputFormatter, add_standard_flags, get_repo_root
from instrux.core.engine import InstruxEngine
from instrux.core.exceptions import InstruxError

SUMMARY = "Show an agent's resolved configuration"


def register_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", help="Agent name")
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        config = InstruxEngine(get_repo_root(args)).load_config(args.name)
    except InstruxError as e:
        formatter.error(e, error_code="config_error")
        return 1

    if formatter.json_mode:
        formatter.json_output(config.to_dict())
        return 0

    formatter.text(f"{config.name}\n")
    formatter.text_kv("Description", config.description or "-")
    formatter.text_kv("Mode", "template" if config.is_compile_mode else "simple")
    formatter.text_kv("Output", f"{config.output_directory}/{config.output_file_pattern}")

    if config.is_compile_mode:
        formatter.text_kv("Entry", config.entry)
        formatter.text_kv("Frontmatter", config.frontmatter_output)
        formatter.text("\n  Sources:")
        for pattern in config.sources:
            formatter.text(f"    - {pattern}")
    else:
        formatter.text("\n  Files:")
        for i, f in enumerate(config.files, start=1):
            kind = "required" if f.required else "optional"
            formatter.text(f"    {i}. {f.path}  [{kind}]")
            if f.description:
                formatter.text(f"       {f.description}")

    formatter.text("\n  Merge settings:")
    for key, value in config.merge_settings.to_dict().items():
        formatter.text_kv(key, value, prefix="    ")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
