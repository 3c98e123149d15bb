"""Frontmatter extraction for instrux source files.

Handles the standard YAML frontmatter format::

    ---
    title: Code Style
    instrux:
      tags: [style, base]
      order: 2
      description: House style rules
    ---

    Content follows here...

Keys under the ``instrux:`` namespace are compiler-owned and never reach the
output. Every other key is pass-through metadata: it is visible to ``{{meta}}``
lookups and is re-emitted in ``preserve`` mode.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from instrux.core.exceptions import MetadataParseError
from instrux.core.utils import dump_yaml_string, parse_yaml_string

logger = logging.getLogger(__name__)

COMPILER_NAMESPACE = "instrux"
DEFAULT_ORDER = 999
FRONTMATTER_DELIMITER = "---"

# Values produced by YAML frontmatter: str, number, bool, list, nested mapping.
MetadataValue = Union[str, int, float, bool, None, List[Any], Dict[str, Any]]
Metadata = Dict[str, MetadataValue]


@dataclass(frozen=True)
class CompilerMetadata:
    """Compiler-owned fields from the ``instrux:`` frontmatter block.

    Attributes:
        tags: Tags used to reference this file from templates.
        order: Sort key when several files share a tag (lower = first).
        description: Free text, used as a title/description fallback.
        extra: Any other keys under the namespace (kept, not interpreted).
    """

    tags: Tuple[str, ...] = ()
    order: Union[int, float] = DEFAULT_ORDER
    description: str = ""
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        *,
        warnings: Optional[List[str]] = None,
        path: Optional[str] = None,
    ) -> "CompilerMetadata":
        """Build from the raw namespace mapping, normalising loose YAML values."""
        where = f" in {path}" if path else ""
        notes = warnings if warnings is not None else []

        raw_tags = data.get("tags")
        tags: List[str] = []
        if raw_tags is None:
            pass
        elif isinstance(raw_tags, str):
            tags = [raw_tags]
        elif isinstance(raw_tags, list):
            tags = [str(t) for t in raw_tags if t is not None]
        else:
            notes.append(f"Ignoring non-list '{COMPILER_NAMESPACE}.tags'{where}")

        order = _coerce_order(data.get("order"))
        if order is None:
            notes.append(
                f"Ignoring non-numeric '{COMPILER_NAMESPACE}.order' {data.get('order')!r}{where}; "
                f"using {DEFAULT_ORDER}"
            )
            order = DEFAULT_ORDER

        description = data.get("description")
        extra = {k: v for k, v in data.items() if k not in {"tags", "order", "description"}}

        return cls(
            tags=tuple(dict.fromkeys(tags)),
            order=order,
            description="" if description is None else str(description),
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Mapping view used by templates (``{{instrux.order}}``)."""
        result: Dict[str, Any] = dict(self.extra)
        result["tags"] = list(self.tags)
        result["order"] = self.order
        result["description"] = self.description
        return result


def _coerce_order(value: Any) -> Optional[Union[int, float]]:
    if value is None:
        return DEFAULT_ORDER
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        if math.isnan(number):
            return None
        return int(number) if number.is_integer() else number
    return None


@dataclass(frozen=True)
class ExtractedFile:
    """Result of running the extractor over one file's raw text."""

    metadata: Metadata
    compiler: CompilerMetadata
    passthrough: Metadata
    body: str
    has_frontmatter: bool = False
    warnings: Tuple[str, ...] = ()


class MetadataExtractor:
    """Split raw markdown into frontmatter and body, then partition the frontmatter.

    Malformed frontmatter (invalid YAML, or YAML that is not a mapping) is
    treated as absent: the raw text is kept as the body and an advisory is
    recorded. With ``strict=True`` a :class:`MetadataParseError` is raised
    instead.
    """

    FRONTMATTER_PATTERN = re.compile(
        r"\A---[ \t]*\r?\n(?P<yaml>.*?)^---[ \t]*(?:\r?\n|\Z)",
        re.DOTALL | re.MULTILINE,
    )

    def __init__(self, namespace: str = COMPILER_NAMESPACE, *, strict: bool = False) -> None:
        self.namespace = namespace
        self.strict = strict

    def split(self, raw: str, path: Optional[str] = None) -> Tuple[Metadata, str]:
        """Return ``(metadata, body)``. Text without frontmatter is returned unchanged."""
        extracted = self.extract(raw, path)
        return extracted.metadata, extracted.body

    def extract(self, raw: str, path: Optional[str] = None) -> ExtractedFile:
        text = raw.lstrip("\ufeff")
        match = self.FRONTMATTER_PATTERN.match(text)
        if not match:
            return ExtractedFile(
                metadata={},
                compiler=CompilerMetadata(),
                passthrough={},
                body=raw,
            )

        try:
            data = parse_yaml_string(match.group("yaml"))
        except yaml.YAMLError as exc:
            return self._malformed(raw, path, _first_line(str(exc)))

        if data is None:
            data = {}
        if not isinstance(data, dict):
            return self._malformed(raw, path, f"expected a mapping, got {type(data).__name__}")

        metadata: Metadata = {str(k): v for k, v in data.items()}
        warnings: List[str] = []
        compiler, passthrough = self.partition(metadata, warnings=warnings, path=path)
        for note in warnings:
            logger.warning(note)

        return ExtractedFile(
            metadata=metadata,
            compiler=compiler,
            passthrough=passthrough,
            body=text[match.end():],
            has_frontmatter=True,
            warnings=tuple(warnings),
        )

    def partition(
        self,
        metadata: Mapping[str, Any],
        *,
        warnings: Optional[List[str]] = None,
        path: Optional[str] = None,
    ) -> Tuple[CompilerMetadata, Metadata]:
        """Separate compiler-owned fields from pass-through fields."""
        notes = warnings if warnings is not None else []
        namespace_value = metadata.get(self.namespace)
        if namespace_value is None:
            compiler = CompilerMetadata()
        elif isinstance(namespace_value, dict):
            compiler = CompilerMetadata.from_dict(namespace_value, warnings=notes, path=path)
        else:
            where = f" in {path}" if path else ""
            notes.append(f"Ignoring non-mapping '{self.namespace}' frontmatter block{where}")
            compiler = CompilerMetadata()

        passthrough = {k: v for k, v in metadata.items() if k != self.namespace}
        return compiler, passthrough

    def _malformed(self, raw: str, path: Optional[str], reason: str) -> ExtractedFile:
        error = MetadataParseError(path, reason)
        if self.strict:
            raise error
        logger.warning("%s (treating frontmatter as body text)", error)
        return ExtractedFile(
            metadata={},
            compiler=CompilerMetadata(),
            passthrough={},
            body=raw,
            warnings=(str(error),),
        )


def _first_line(message: str) -> str:
    return message.strip().splitlines()[0] if message.strip() else "invalid YAML"


def serialize_frontmatter(data: Mapping[str, Any]) -> str:
    """Serialize metadata back to a ``---`` delimited block.

    Returns an empty string when ``data`` has no keys, so an empty
    pass-through set never produces an empty block.
    """
    if not data:
        return ""
    body = dump_yaml_string(dict(data)).rstrip("\n")
    return f"{FRONTMATTER_DELIMITER}\n{body}\n{FRONTMATTER_DELIMITER}\n\n"


def default_title(path: str) -> str:
    """Filename-derived title: the file stem (``docs/code-style.md`` -> ``code-style``)."""
    return PurePosixPath(path).stem


__all__ = [
    "COMPILER_NAMESPACE",
    "DEFAULT_ORDER",
    "CompilerMetadata",
    "ExtractedFile",
    "Metadata",
    "MetadataExtractor",
    "MetadataValue",
    "default_title",
    "serialize_frontmatter",
]
