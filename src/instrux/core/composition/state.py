"""Per-compile traversal state for the resolution engine."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


@dataclass
class ResolutionState:
    """Mutable state owned by exactly one compile call.

    ``active_stack`` holds the chain of files currently being resolved (used
    only for cycle detection); ``visited_files`` and ``referenced_tags`` only
    grow and feed the compile report.
    """

    active_stack: List[str] = field(default_factory=list)
    visited_files: Set[str] = field(default_factory=set)
    referenced_tags: Set[str] = field(default_factory=set)
    warnings: List[str] = field(default_factory=list)
    missing_variables: Set[Tuple[str, str]] = field(default_factory=set)
    empty_tags: Set[str] = field(default_factory=set)

    @property
    def depth(self) -> int:
        return len(self.active_stack)

    @property
    def current(self) -> Optional[str]:
        return self.active_stack[-1] if self.active_stack else None

    def is_active(self, path: str) -> bool:
        return path in self.active_stack

    def chain(self, path: str) -> List[str]:
        """Active chain from the entry file through ``path``."""
        return [*self.active_stack, path]

    @contextmanager
    def resolving(self, path: str) -> Iterator[None]:
        """Push ``path`` for the duration of its resolution."""
        self.active_stack.append(path)
        self.visited_files.add(path)
        try:
            yield
        finally:
            self.active_stack.pop()

    def record_tag(self, tag: str) -> None:
        self.referenced_tags.add(tag)

    def record_empty_tag(self, tag: str, origin: Optional[str]) -> None:
        where = f" (in {origin})" if origin else ""
        message = f'Tag "{tag}" matched 0 files{where}'
        if tag not in self.empty_tags:
            self.empty_tags.add(tag)
            self.warn(message)

    def record_missing_variable(self, name: str, origin: Optional[str], line: Optional[int]) -> None:
        key = (origin or "", name)
        if key in self.missing_variables:
            return
        self.missing_variables.add(key)
        where = f" in {origin}" + (f":{line}" if line else "") if origin else ""
        self.warn(f'Missing variable "{name}"{where}')

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)
