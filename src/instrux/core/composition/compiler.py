"""Template-mode compiler.

Pipeline:
  1. Validate the composition config (before any file is read).
  2. Scan sources, parse frontmatter, build the tag index.
  3. Resolve the entry file recursively against the index.
  4. Attach optional pass-through frontmatter and normalise the output.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from instrux.core.config.models import CompositionConfig

from .index import SourceIndex, build_source_index, normalize_path
from .metadata import MetadataExtractor
from .output import assemble
from .report import CompositionReport
from .resolver import ResolutionEngine
from .state import ResolutionState

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    """Output of one compile run."""

    output: str
    files_compiled: int
    tags_used: List[str] = field(default_factory=list)
    report: Optional[CompositionReport] = None

    @property
    def warnings(self) -> List[str]:
        return list(self.report.warnings) if self.report else []


class InstruxCompiler:
    """Compile an entry template and its transitive includes into one document.

    A compiler may be reused: every :meth:`compile` call rebuilds the index and
    starts from a fresh :class:`ResolutionState`.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        config: CompositionConfig,
        *,
        extractor: Optional[MetadataExtractor] = None,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.config = config
        self.extractor = extractor or MetadataExtractor()

    def build_index(self) -> SourceIndex:
        return build_source_index(self.root_dir, self.config.sources, extractor=self.extractor)

    def compile(self) -> CompileResult:
        config = self.config
        config.validate()
        entry = normalize_path(config.entry or "")

        logger.info("Scanning sources for %s", config.name or entry)
        index = self.build_index()

        state = ResolutionState()
        engine = ResolutionEngine(
            index,
            root_dir=self.root_dir,
            separator=config.separator,
            agent={"name": config.name, "description": config.description},
            max_depth=config.max_depth,
            strict_tags=config.strict_tags,
            allow_outside_root=config.allow_outside_root,
            extractor=self.extractor,
        )

        logger.info("Compiling %s", entry)
        body = engine.resolve_file(entry, state)
        assembled = assemble(body, engine.load(entry), config.frontmatter_output, state)

        report = CompositionReport.from_state(
            state,
            agent_name=config.name,
            entry=entry,
            files_indexed=len(index),
            unique_tags=len(index.by_tag),
            parse_warnings=list(index.warnings),
        )
        logger.info("Compiled %d files (tags: %s)", assembled.files_compiled, ", ".join(assembled.tags_used) or "-")

        return CompileResult(
            output=assembled.text,
            files_compiled=assembled.files_compiled,
            tags_used=assembled.tags_used,
            report=report,
        )


__all__ = ["CompileResult", "InstruxCompiler"]
