"""
instrux - compose modular markdown instruction files into a single document.

Source files carry YAML frontmatter with an ``instrux:`` block (tags, order,
description). An entry template pulls content in by tag or by path, and the
compiler resolves those references recursively into one output file.
"""

__version__ = "1.0.0"

from instrux.core.composition import (
    CompileResult,
    InstruxCompiler,
    ParsedFile,
    SourceIndex,
    build_source_index,
    sort_source_files,
)
from instrux.core.config import CompositionConfig, MergeSettings, ResolvedAgentConfig
from instrux.core.engine import BuildResult, InstruxEngine

__all__ = [
    "__version__",
    "BuildResult",
    "CompileResult",
    "CompositionConfig",
    "InstruxCompiler",
    "InstruxEngine",
    "MergeSettings",
    "ParsedFile",
    "ResolvedAgentConfig",
    "SourceIndex",
    "build_source_index",
    "sort_source_files",
]
