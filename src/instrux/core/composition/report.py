"""Composition reporting dataclasses.

Provides a structured report for one compile run.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .state import ResolutionState


@dataclass
class CompositionReport:
    """Report from a composition operation.

    Contains all information about what was processed:
    - Source files indexed and visited
    - Tags referenced (and which of them matched nothing)
    - Variables that were missing
    - Warnings
    """

    # Identification
    agent_name: str
    entry: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    # Processing stats
    files_indexed: int = 0
    unique_tags: int = 0
    files_visited: List[str] = field(default_factory=list)
    tags_used: List[str] = field(default_factory=list)
    empty_tags: List[str] = field(default_factory=list)
    variables_missing: List[str] = field(default_factory=list)

    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_state(
        cls,
        state: ResolutionState,
        *,
        agent_name: str,
        entry: Optional[str] = None,
        files_indexed: int = 0,
        unique_tags: int = 0,
        parse_warnings: Optional[List[str]] = None,
    ) -> "CompositionReport":
        return cls(
            agent_name=agent_name,
            entry=entry,
            files_indexed=files_indexed,
            unique_tags=unique_tags,
            files_visited=sorted(state.visited_files),
            tags_used=sorted(state.referenced_tags),
            empty_tags=sorted(state.empty_tags),
            variables_missing=sorted({name for _, name in state.missing_variables}),
            warnings=[*(parse_warnings or []), *state.warnings],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        return {
            "agent_name": self.agent_name,
            "entry": self.entry,
            "timestamp": self.timestamp.isoformat(),
            "files_indexed": self.files_indexed,
            "unique_tags": self.unique_tags,
            "files_visited": self.files_visited,
            "tags_used": self.tags_used,
            "empty_tags": self.empty_tags,
            "variables_missing": self.variables_missing,
            "warnings": self.warnings,
        }

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            f"Composition Report: {self.agent_name}",
            f"  Entry: {self.entry or '-'}",
            f"  Sources: {self.files_indexed} files, {self.unique_tags} tags",
            f"  Compiled: {len(self.files_visited)} files",
            f"  Tags used: {', '.join(self.tags_used) if self.tags_used else '-'}",
        ]

        if self.warnings:
            lines.append(f"  Warnings: {len(self.warnings)}")
            for w in self.warnings[:3]:  # Show first 3
                lines.append(f"    - {w}")

        return "\n".join(lines)


__all__ = ["CompositionReport"]
