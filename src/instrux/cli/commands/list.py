"""
instrux list command.

SUMMARY: List agents found under the agents directory
"""

from __future__ import annotations

import argparse
import sys

from instrux.cli import OutputFormatter, add_standard_flags, get_repo_root
from instrux.core.engine import InstruxEngine
from instrux.core.exceptions import InstruxError

SUMMARY = "List agents found under the agents directory"


def register_args(parser: argparse.ArgumentParser) -> None:
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))
    try:
        engine = InstruxEngine(get_repo_root(args))
        agents = engine.list_agents()

        rows = []
        for agent in agents:
            row = agent.to_dict()
            if agent.config is not None:
                resolved = engine.load_config(agent.name)
                row["output"] = f"{resolved.output_directory}/{resolved.output_file_pattern}"
                row["files"] = len(resolved.files) if resolved.files else len(resolved.sources)
            rows.append(row)

        if formatter.json_mode:
            formatter.json_output({"agents": rows})
            return 0

        if not rows:
            formatter.text("No agents found.")
            return 0

        formatter.text("Available agents:\n")
        for row in rows:
            if not row["valid"]:
                formatter.text(f"  {row['name']}  (invalid or missing agent config)")
                continue
            formatter.text(f"  {row['name']}  [{row['mode']}]")
            if row["description"]:
                formatter.text(f"    {row['description']}")
            formatter.text(f"    Files: {row['files']}  →  {row['output']}")
        return 0
    except InstruxError as e:
        formatter.error(e, error_code="list_error")
        return 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
