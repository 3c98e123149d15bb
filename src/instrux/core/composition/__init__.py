"""Template composition: frontmatter, source index, recursive resolution, output."""
from __future__ import annotations

from .compiler import CompileResult, InstruxCompiler
from .directives import Template, parse
from .index import ParsedFile, SourceIndex, build_source_index, normalize_path, sort_source_files
from .metadata import (
    COMPILER_NAMESPACE,
    DEFAULT_ORDER,
    CompilerMetadata,
    MetadataExtractor,
    serialize_frontmatter,
)
from .output import AssembledOutput, assemble, normalize_trailing_newline
from .report import CompositionReport
from .resolver import ResolutionEngine, resolve_file
from .state import ResolutionState

__all__ = [
    "COMPILER_NAMESPACE",
    "DEFAULT_ORDER",
    "AssembledOutput",
    "CompileResult",
    "CompilerMetadata",
    "CompositionReport",
    "InstruxCompiler",
    "MetadataExtractor",
    "ParsedFile",
    "ResolutionEngine",
    "ResolutionState",
    "SourceIndex",
    "Template",
    "assemble",
    "build_source_index",
    "normalize_path",
    "normalize_trailing_newline",
    "parse",
    "resolve_file",
    "serialize_frontmatter",
    "sort_source_files",
]
