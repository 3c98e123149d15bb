"""File I/O helpers for instrux.

Single place for the text, YAML and JSON access patterns used by the
configuration layer, the source indexer and the build engine:
- Atomic writes (temp file + fsync + rename) for generated output
- YAML/JSON readers that either fail closed or fall back to a default
"""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, TextIO, Union

import yaml

PathLike = Union[str, Path]


# Literal block style for multiline strings keeps emitted frontmatter readable.
def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


class _InstruxDumper(yaml.SafeDumper):
    """SafeDumper with instrux's string style; keeps the global dumper untouched."""


_InstruxDumper.add_representer(str, _str_representer)


def ensure_parent_dir(path: Path) -> None:
    """Ensure the parent directory for ``path`` exists."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def atomic_write(
    path: Path,
    write_fn: Callable[[TextIO], None],
    *,
    encoding: str = "utf-8",
) -> None:
    """Write to ``path`` atomically using a temp file + fsync + rename.

    Args:
        path: Target file path
        write_fn: Callable that writes content to the file object
        encoding: Text encoding (default: utf-8)
    """
    path = Path(path)
    ensure_parent_dir(path)

    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding=encoding,
            dir=str(path.parent),
            delete=False,
            newline="",
        ) as f:
            tmp_path = Path(f.name)
            write_fn(f)
            f.flush()
            os.fsync(f.fileno())

        os.replace(str(tmp_path), str(path))
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()


def write_text(path: PathLike, content: str) -> None:
    """Atomically write UTF-8 text to ``path``."""

    def _writer(f: TextIO) -> None:
        f.write(content)

    atomic_write(Path(path), _writer)


def read_yaml(path: Path, default: Any = None, raise_on_error: bool = False) -> Any:
    """Read YAML with error handling.

    Returns default if file is missing or invalid, unless raise_on_error is True.
    """
    path = Path(path)
    if not path.exists():
        if raise_on_error:
            raise FileNotFoundError(f"File not found: {path}")
        return default

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if data is not None else default
    except (OSError, yaml.YAMLError):
        if raise_on_error:
            raise
        return default


def read_json(path: Path, default: Any = None, raise_on_error: bool = False) -> Any:
    """Read JSON with the same contract as :func:`read_yaml`."""
    path = Path(path)
    if not path.exists():
        if raise_on_error:
            raise FileNotFoundError(f"File not found: {path}")
        return default

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        if raise_on_error:
            raise
        return default


def parse_yaml_string(content: str) -> Any:
    """Parse YAML from a string. ``yaml.YAMLError`` propagates to the caller."""
    return yaml.safe_load(content)


def dump_yaml_string(data: Any, *, sort_keys: bool = False) -> str:
    """Serialize ``data`` to a YAML string, preserving key order by default."""
    return yaml.dump(
        data,
        Dumper=_InstruxDumper,
        default_flow_style=False,
        sort_keys=sort_keys,
        allow_unicode=True,
    )


__all__ = [
    "PathLike",
    "ensure_parent_dir",
    "atomic_write",
    "write_text",
    "read_yaml",
    "read_json",
    "parse_yaml_string",
    "dump_yaml_string",
]
