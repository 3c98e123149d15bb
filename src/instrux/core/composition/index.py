"""Source indexing for the instrux compiler.

Scans source globs, parses frontmatter from each markdown file, and builds a
path index plus a tag index the resolver uses to expand references. The index
is built once per compile and never mutated afterwards.
"""
from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from instrux.core.exceptions import ConfigurationError, SourceReadError

from .metadata import CompilerMetadata, Metadata, MetadataExtractor, default_title

logger = logging.getLogger(__name__)

# Dependency/vendor directories never scanned, even when a glob would match.
EXCLUDED_DIRECTORIES = frozenset({"node_modules", "__pycache__", "venv", ".venv", ".git"})


def normalize_path(path: Union[str, Path]) -> str:
    """Normalise a relative path to forward slashes (``a\\b/../c.md`` -> ``a/c.md``)."""
    text = str(path).replace("\\", "/").strip()
    if not text:
        return text
    return posixpath.normpath(text)


@dataclass(frozen=True)
class ParsedFile:
    """One scanned source file with separated frontmatter and body.

    Attributes:
        path: Root-relative path with forward slashes; identity key.
        metadata: Full parsed frontmatter.
        compiler: Compiler-owned metadata (``instrux:`` block).
        passthrough: Frontmatter without the compiler block.
        body: Markdown content without the frontmatter block.
    """

    path: str
    metadata: Metadata = field(default_factory=dict)
    compiler: CompilerMetadata = field(default_factory=CompilerMetadata)
    passthrough: Metadata = field(default_factory=dict)
    body: str = ""
    warnings: Tuple[str, ...] = ()

    @classmethod
    def from_text(
        cls,
        path: str,
        raw: str,
        extractor: Optional[MetadataExtractor] = None,
    ) -> "ParsedFile":
        extracted = (extractor or MetadataExtractor()).extract(raw, path)
        return cls(
            path=path,
            metadata=extracted.metadata,
            compiler=extracted.compiler,
            passthrough=extracted.passthrough,
            body=extracted.body,
            warnings=extracted.warnings,
        )

    @property
    def tags(self) -> Tuple[str, ...]:
        return self.compiler.tags

    @property
    def order(self) -> Union[int, float]:
        return self.compiler.order

    @property
    def title(self) -> str:
        """Frontmatter title, else compiler description, else the file stem."""
        title = self.passthrough.get("title")
        if title not in (None, ""):
            return str(title)
        return self.compiler.description or default_title(self.path)

    @property
    def description(self) -> str:
        description = self.passthrough.get("description")
        if description not in (None, ""):
            return str(description)
        return self.compiler.description


def sort_key(file: ParsedFile) -> Tuple[Union[int, float], str]:
    return (file.order, file.path)


def sort_source_files(files: Iterable[ParsedFile]) -> List[ParsedFile]:
    """Sort by ``instrux.order`` ascending, then by path for a stable tie-break."""
    return sorted(files, key=sort_key)


@dataclass(frozen=True)
class SourceIndex:
    """Tag-indexed, immutable collection of parsed source files."""

    root_dir: Path
    by_path: Mapping[str, ParsedFile]
    by_tag: Mapping[str, Tuple[ParsedFile, ...]]
    warnings: Tuple[str, ...] = ()

    @classmethod
    def from_files(
        cls,
        root_dir: Union[str, Path],
        files: Iterable[ParsedFile],
        warnings: Sequence[str] = (),
    ) -> "SourceIndex":
        """Build an index; a later file with an already-seen path replaces the earlier one."""
        by_path: Dict[str, ParsedFile] = {}
        for f in files:
            by_path[f.path] = f

        buckets: Dict[str, List[ParsedFile]] = {}
        for f in by_path.values():
            for tag in f.tags:
                buckets.setdefault(tag, []).append(f)

        return cls(
            root_dir=Path(root_dir),
            by_path=MappingProxyType(by_path),
            by_tag=MappingProxyType({tag: tuple(b) for tag, b in buckets.items()}),
            warnings=tuple(warnings),
        )

    @property
    def files(self) -> Tuple[ParsedFile, ...]:
        return tuple(self.by_path[p] for p in sorted(self.by_path))

    @property
    def tags(self) -> List[str]:
        return sorted(self.by_tag)

    def get(self, path: str) -> Optional[ParsedFile]:
        return self.by_path.get(normalize_path(path))

    def tagged(self, tag: str) -> Tuple[ParsedFile, ...]:
        """Files carrying ``tag``, in no particular order."""
        return self.by_tag.get(tag, ())

    def __len__(self) -> int:
        return len(self.by_path)


def _normalize_pattern(pattern: str) -> str:
    text = pattern.replace("\\", "/").strip()
    while text.startswith("./"):
        text = text[2:]
    if not text:
        raise ConfigurationError("Empty source pattern")
    if text.startswith("/"):
        raise ConfigurationError(
            f"Source pattern must be relative to the project root: {pattern}",
            context={"pattern": pattern},
        )
    return text


def _is_excluded(rel_parts: Sequence[str], pattern_parts: Sequence[str]) -> bool:
    for part in rel_parts[:-1]:
        if part in EXCLUDED_DIRECTORIES and part not in pattern_parts:
            return True
    for part in rel_parts:
        if part.startswith(".") and part not in pattern_parts:
            return True
    return False


def expand_patterns(root_dir: Union[str, Path], patterns: Sequence[str]) -> List[str]:
    """Expand glob patterns relative to ``root_dir`` into sorted, unique relative paths.

    Only regular files are returned. Hidden entries and dependency directories
    are skipped unless the pattern names them explicitly.
    """
    root = Path(root_dir)
    matched: Dict[str, None] = {}
    for pattern in patterns:
        normalized = _normalize_pattern(pattern)
        pattern_parts = normalized.split("/")
        for candidate in root.glob(normalized):
            if not candidate.is_file():
                continue
            rel = candidate.relative_to(root)
            if _is_excluded(rel.parts, pattern_parts):
                continue
            matched[rel.as_posix()] = None
    return sorted(matched)


def build_source_index(
    root_dir: Union[str, Path],
    patterns: Sequence[str],
    *,
    extractor: Optional[MetadataExtractor] = None,
) -> SourceIndex:
    """Scan source globs, parse frontmatter, and return an indexed collection.

    Raises:
        SourceReadError: If any matched file cannot be read. No partial index
            is returned.
    """
    root = Path(root_dir)
    extractor = extractor or MetadataExtractor()

    files: List[ParsedFile] = []
    warnings: List[str] = []
    for rel_path in expand_patterns(root, patterns):
        abs_path = root / rel_path
        try:
            raw = abs_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceReadError(rel_path, str(exc)) from exc

        parsed = ParsedFile.from_text(normalize_path(rel_path), raw, extractor)
        warnings.extend(parsed.warnings)
        files.append(parsed)

    index = SourceIndex.from_files(root, files, warnings)
    logger.info("Found %d source files, %d unique tags", len(index), len(index.by_tag))
    return index


__all__ = [
    "EXCLUDED_DIRECTORIES",
    "ParsedFile",
    "SourceIndex",
    "build_source_index",
    "expand_patterns",
    "normalize_path",
    "sort_key",
    "sort_source_files",
]
