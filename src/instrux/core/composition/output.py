"""Final document assembly."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .index import ParsedFile
from .metadata import serialize_frontmatter
from .state import ResolutionState


@dataclass(frozen=True)
class AssembledOutput:
    text: str
    files_compiled: int = 0
    tags_used: List[str] = field(default_factory=list)


def normalize_trailing_newline(text: str) -> str:
    """Strip trailing whitespace and end with exactly one newline (empty stays empty)."""
    stripped = text.rstrip()
    return f"{stripped}\n" if stripped else ""


def assemble(
    rendered: str,
    entry_file: Optional[ParsedFile],
    mode: str = "strip",
    state: Optional[ResolutionState] = None,
) -> AssembledOutput:
    """Attach optional pass-through frontmatter to the rendered entry and normalise it.

    In ``preserve`` mode the entry file's pass-through metadata is written back
    as a ``---`` block; compiler-owned keys never are. An entry without
    pass-through keys gets no block at all. Under a block, leading newlines of
    ``rendered`` are dropped so exactly one blank line follows the closing
    ``---``.
    """
    header = ""
    if mode == "preserve" and entry_file is not None:
        header = serialize_frontmatter(entry_file.passthrough)

    body = rendered.lstrip("\r\n") if header else rendered
    return AssembledOutput(
        text=normalize_trailing_newline(header + body),
        files_compiled=len(state.visited_files) if state else 0,
        tags_used=sorted(state.referenced_tags) if state else [],
    )


__all__ = ["AssembledOutput", "assemble", "normalize_trailing_newline"]
