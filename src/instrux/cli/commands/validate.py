"""
instrux validate command.

SUMMARY: Check that an agent's source files exist
"""

from __future__ import annotations

import argparse
import sys

from instrux.cli import OutputFormatter, add_standard_flags, get_repo_root
from instrux.core.composition import InstruxCompiler
from instrux.core.engine import InstruxEngine
from instrux.core.exceptions import InstruxError

SUMMARY = "Check that an agent's source files exist"


def register_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", help="Agent name")
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        engine = InstruxEngine(get_repo_root(args))
        config = engine.load_config(args.name)

        if config.is_compile_mode:
            composition = config.composition_config()
            composition.validate()
            index = InstruxCompiler(engine.root_dir, composition).build_index()
            entry_found = index.get(config.entry or "") is not None or (engine.root_dir / (config.entry or "")).is_file()
            payload = {
                "agent": config.name,
                "mode": "template",
                "valid": entry_found,
                "entry": config.entry,
                "files_indexed": len(index),
                "tags": index.tags,
                "missing": [] if entry_found else [config.entry],
                "warnings": list(index.warnings),
            }
        else:
            result = engine.validate(config)
            payload = {"agent": config.name, "mode": "simple", **result.to_dict()}
    except InstruxError as e:
        formatter.error(e, error_code="validate_error")
        return 1

    if formatter.json_mode:
        formatter.json_output(payload)
    else:
        status = "✓ valid" if payload["valid"] else "✗ invalid"
        formatter.text(f"{config.name}: {status} ({payload['mode']} mode)")
        if payload["mode"] == "template":
            formatter.text_kv("Sources", f"{payload['files_indexed']} files, {len(payload['tags'])} tags")
        for m in payload["missing"]:
            formatter.text(f"  missing: {m}")
        for w in payload["warnings"]:
            formatter.text(f"  ⚠  {w}")
    return 0 if payload["valid"] else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
