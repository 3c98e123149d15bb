"""Shared utilities (file I/O, merging)."""
from __future__ import annotations

from .io import (
    PathLike,
    atomic_write,
    dump_yaml_string,
    ensure_parent_dir,
    parse_yaml_string,
    read_json,
    read_yaml,
    write_text,
)
from .merge import deep_merge

__all__ = [
    "PathLike",
    "atomic_write",
    "deep_merge",
    "dump_yaml_string",
    "ensure_parent_dir",
    "parse_yaml_string",
    "read_json",
    "read_yaml",
    "write_text",
]
