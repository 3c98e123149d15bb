"""Recursive reference resolution.

:meth:`ResolutionEngine.resolve_file` renders one file and, through the
template helpers, calls itself depth-first for every tag or path the file
references. A directive's output is the fully resolved text of its target.

Resolution is single-threaded. Cycle detection uses the ancestor chain kept
in :class:`~instrux.core.composition.state.ResolutionState`, so a file may be
included many times as long as it never includes itself, directly or not.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from instrux.core.config.models import DEFAULT_MAX_DEPTH, MergeSettings
from instrux.core.exceptions import (
    CircularReferenceError,
    EmptyTagError,
    MaxDepthExceededError,
    PathOutsideRootError,
    SourceNotFoundError,
    SourceReadError,
)

from .directives import Template, parse
from .index import ParsedFile, SourceIndex, normalize_path, sort_source_files
from .metadata import MetadataExtractor
from .renderer import TemplateRenderer
from .state import ResolutionState

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = MergeSettings().separator


class ResolutionEngine:
    """Render files from a :class:`SourceIndex`, expanding directives recursively.

    Args:
        index: Immutable source index for this compile.
        root_dir: Project root for the disk fallback. Defaults to the index root.
        separator: Joins the files pulled in by one ``{{tag}}``.
        agent: Identity fields exposed as ``{{agent.name}}`` and
            ``{{agent.description}}``.
        max_depth: Longest allowed include chain; ``None`` disables the cap.
        strict_tags: Raise :class:`EmptyTagError` for tags matching no files
            instead of recording an advisory.
        allow_outside_root: Let the disk fallback read files outside
            ``root_dir`` (``../`` paths, absolute paths).
    """

    def __init__(
        self,
        index: SourceIndex,
        *,
        root_dir: Optional[Union[str, Path]] = None,
        separator: str = DEFAULT_SEPARATOR,
        agent: Optional[Mapping[str, Any]] = None,
        max_depth: Optional[int] = DEFAULT_MAX_DEPTH,
        strict_tags: bool = False,
        allow_outside_root: bool = False,
        extractor: Optional[MetadataExtractor] = None,
    ) -> None:
        self.index = index
        self.root_dir = Path(root_dir) if root_dir is not None else index.root_dir
        self.separator = separator
        self.agent = {"name": "", "description": "", **dict(agent or {})}
        self.max_depth = max_depth
        self.strict_tags = strict_tags
        self.allow_outside_root = allow_outside_root
        self.extractor = extractor or MetadataExtractor()
        self._templates: Dict[str, Template] = {}
        self._disk_files: Dict[str, ParsedFile] = {}

    # ----- core recursion -----

    def resolve_file(self, path: str, state: ResolutionState) -> str:
        """Render ``path`` with every directive expanded.

        Raises:
            CircularReferenceError: ``path`` is already being resolved.
            MaxDepthExceededError: The include chain is longer than ``max_depth``
                or too deep for the interpreter stack.
            SourceNotFoundError: ``path`` is neither indexed nor on disk.
            PathOutsideRootError: The disk fallback would leave the root.
        """
        key = normalize_path(path)
        if state.is_active(key):
            raise CircularReferenceError(state.chain(key))
        if self.max_depth is not None and state.depth >= self.max_depth:
            raise MaxDepthExceededError(state.chain(key), self.max_depth)

        included_from = state.current
        with state.resolving(key):
            try:
                source = self.load(key, state, included_from=included_from)
                logger.debug("Resolving %s (depth %d)", key, state.depth)
                renderer = TemplateRenderer(self, state, key, self.context_for(source))
                return renderer.render(self._template(source))
            except RecursionError:
                # Interpreter stack ran out before max_depth was reached.
                raise MaxDepthExceededError(list(state.active_stack), self.max_depth) from None

    def load(
        self,
        path: str,
        state: Optional[ResolutionState] = None,
        *,
        included_from: Optional[str] = None,
    ) -> ParsedFile:
        """Return the indexed file for ``path``, falling back to a disk read."""
        key = normalize_path(path)
        indexed = self.index.get(key)
        if indexed is not None:
            return indexed
        if key in self._disk_files:
            return self._disk_files[key]

        abs_path = self._disk_path(key)
        if not key or not abs_path.is_file():
            raise SourceNotFoundError(key or path, included_from=included_from)
        try:
            raw = abs_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceReadError(key, str(exc)) from exc

        logger.debug("Loaded %s from disk (outside source patterns)", key)
        parsed = ParsedFile.from_text(key, raw, self.extractor)
        if state is not None:
            state.warnings.extend(parsed.warnings)
        self._disk_files[key] = parsed
        return parsed

    def _disk_path(self, key: str) -> Path:
        candidate = self.root_dir / key
        if self.allow_outside_root:
            return candidate
        root = self.root_dir.resolve()
        try:
            candidate.resolve().relative_to(root)
        except ValueError:
            raise PathOutsideRootError(key, str(root)) from None
        return candidate

    def _template(self, source: ParsedFile) -> Template:
        template = self._templates.get(source.path)
        if template is None:
            template = parse(source.body, source.path)
            self._templates[source.path] = template
        return template

    def context_for(self, source: ParsedFile) -> Dict[str, Any]:
        """Root render scope for one file: agent identity plus its own metadata."""
        return {"agent": dict(self.agent), "meta": dict(source.passthrough)}

    # ----- directive targets -----

    def matches(self, tag: str, state: ResolutionState) -> List[ParsedFile]:
        """Files tagged ``tag`` in ``(order, path)`` order; records the lookup."""
        state.record_tag(tag)
        files = self.index.tagged(tag)
        if not files:
            if self.strict_tags:
                raise EmptyTagError(tag, state.current)
            state.record_empty_tag(tag, state.current)
            return []
        return sort_source_files(files)

    def include_tag(
        self,
        tag: str,
        state: ResolutionState,
        *,
        separator: Optional[str] = None,
    ) -> str:
        rendered = [self.resolve_file(f.path, state) for f in self.matches(tag, state)]
        return (self.separator if separator is None else separator).join(rendered)

    def include_file(self, path: str, state: ResolutionState) -> str:
        return self.resolve_file(path, state)

    def tagged_items(self, tag: str, state: ResolutionState) -> List[Dict[str, Any]]:
        """Per-file mappings for ``{{#each (tagged "...")}}`` loops."""
        items: List[Dict[str, Any]] = []
        for f in self.matches(tag, state):
            items.append(
                {
                    "body": self.resolve_file(f.path, state),
                    "raw": f.body,
                    "path": f.path,
                    "title": f.title,
                    "description": f.description,
                    "frontmatter": dict(f.passthrough),
                    "instrux": f.compiler.to_dict(),
                }
            )
        return items


def resolve_file(
    path: str,
    index: SourceIndex,
    state: Optional[ResolutionState] = None,
    **options: Any,
) -> str:
    """Resolve ``path`` against ``index`` with a throwaway engine."""
    return ResolutionEngine(index, **options).resolve_file(path, state or ResolutionState())


__all__ = ["DEFAULT_SEPARATOR", "ResolutionEngine", "resolve_file"]
