"""instrux build engine.

Loads agent configs, validates source files, and produces one output file per
agent in one of two modes:

- simple merge: the agent's ``files`` list concatenated in order
- template: the agent's ``entry`` compiled by
  :class:`~instrux.core.composition.InstruxCompiler`
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from instrux.core.composition import InstruxCompiler
from instrux.core.config import AgentConfig, ConfigManager, RepoConfig, ResolvedAgentConfig
from instrux.core.config.manager import BASE_DIRECTORY
from instrux.core.exceptions import ConfigurationError, MissingFilesError
from instrux.core.utils import write_text

logger = logging.getLogger(__name__)

GENERATOR_NAME = "instrux"


@dataclass
class BuildResult:
    """Summary of one agent build."""

    output_path: str
    content_length: int
    content_hash: str
    files_included: int
    files_skipped: int = 0
    tags_used: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    mode: str = "simple"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    valid: bool
    missing: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MergeResult:
    content: str
    files_included: int
    files_skipped: int
    warnings: List[str] = field(default_factory=list)


@dataclass
class AgentEntry:
    """An agent directory; ``config`` is None when its config is absent or invalid."""

    name: str
    config: Optional[AgentConfig] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.config.description if self.config else None,
            "mode": None if self.config is None else ("template" if self.config.entry else "simple"),
            "valid": self.config is not None,
        }


class InstruxEngine:
    """Build agents for one project root."""

    def __init__(self, root_dir: Optional[Union[str, Path]] = None) -> None:
        self.root_dir = Path(root_dir) if root_dir is not None else Path.cwd()
        self.config_manager = ConfigManager(self.root_dir)

    # ----- configuration -----

    def load_repo_config(self) -> RepoConfig:
        return self.config_manager.load_repo_config()

    def load_config(self, agent_name: str, *, strict_tags: Optional[bool] = None) -> ResolvedAgentConfig:
        return self.config_manager.load(agent_name, strict_tags=strict_tags)

    def list_agents(self) -> List[AgentEntry]:
        """Agent directories under the agents directory, excluding ``base``."""
        agents_dir = self.config_manager.agents_dir()
        if not agents_dir.is_dir():
            return []
        agents: List[AgentEntry] = []
        for child in sorted(agents_dir.iterdir(), key=lambda p: p.name):
            if not child.is_dir() or child.name == BASE_DIRECTORY or child.name.startswith("."):
                continue
            agents.append(AgentEntry(child.name, self.config_manager.try_load_agent_config(child)))
        return agents

    # ----- simple merge mode -----

    def validate(self, config: ResolvedAgentConfig) -> ValidationResult:
        """Check that every required ``files`` entry exists."""
        missing: List[str] = []
        warnings: List[str] = []
        for f in config.files:
            if (self.root_dir / f.path).is_file():
                continue
            if f.required:
                missing.append(f.path)
            else:
                warnings.append(f"Optional file not found: {f.path}")
        return ValidationResult(valid=not missing, missing=missing, warnings=warnings)

    def merge(self, config: ResolvedAgentConfig) -> MergeResult:
        """Concatenate ``files`` in order; empty or absent files are skipped."""
        settings = config.merge_settings
        parts: List[str] = []
        warnings: List[str] = []
        included = 0
        skipped = 0

        if settings.include_file_headers:
            stamp = datetime.now(timezone.utc).isoformat()
            parts.append(
                f"<!-- Generated by {GENERATOR_NAME} -->\n"
                f"<!-- Agent: {config.name} -->\n"
                f"<!-- Generated: {stamp} -->\n\n"
            )

        separator = f"\n{settings.separator_style}\n" if settings.add_separators else "\n"
        for f in config.files:
            path = self.root_dir / f.path
            content = path.read_text(encoding="utf-8") if path.is_file() else ""
            if not content.strip():
                kind = "required" if f.required else "optional"
                message = f"Skipping empty {kind} file: {f.path}"
                logger.warning(message)
                warnings.append(message)
                skipped += 1
                continue

            if included:
                parts.append(separator)
            if settings.include_file_headers:
                parts.append(f"<!-- File: {f.path} -->\n<!-- {f.description} -->\n\n")
            parts.append(content.strip())
            included += 1

        merged = "".join(parts).strip()
        return MergeResult(
            content=f"{merged}\n" if merged else "",
            files_included=included,
            files_skipped=skipped,
            warnings=warnings,
        )

    # ----- output -----

    def output_filename(self, config: ResolvedAgentConfig, content: str) -> str:
        """Apply ``{timestamp}`` and hash-suffix rules to the output file pattern."""
        name = config.output_file_pattern
        if config.merge_settings.use_timestamp:
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
            name = name.replace("{timestamp}", stamp)
        else:
            name = name.replace("_{timestamp}", "").replace("{timestamp}_", "").replace("{timestamp}", "")

        if config.merge_settings.generate_hash:
            name = name.replace(".md", f"_{self.content_hash(content)}.md", 1)
        return name

    def write_output(self, config: ResolvedAgentConfig, content: str) -> Path:
        output_dir = Path(config.output_directory)
        if not output_dir.is_absolute():
            output_dir = self.root_dir / output_dir
        output_path = output_dir / self.output_filename(config, content)
        write_text(output_path, content)
        logger.info("Wrote %s", output_path)
        return output_path

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root_dir).as_posix()
        except ValueError:
            return str(path)

    # ----- build -----

    def is_compile_mode(self, config: ResolvedAgentConfig) -> bool:
        """True when the agent uses the template compiler instead of simple merge."""
        return config.is_compile_mode

    def build(self, agent_name: str, *, strict_tags: Optional[bool] = None) -> BuildResult:
        """Validate, merge or compile, and write one agent's output.

        Nothing is written when validation, indexing or resolution fails.
        """
        config = self.load_config(agent_name, strict_tags=strict_tags)

        if self.is_compile_mode(config):
            result = InstruxCompiler(self.root_dir, config.composition_config()).compile()
            output_path = self.write_output(config, result.output)
            return BuildResult(
                output_path=self._relative(output_path),
                content_length=len(result.output),
                content_hash=self.content_hash(result.output),
                files_included=result.files_compiled,
                tags_used=list(result.tags_used),
                warnings=result.warnings,
                mode="template",
            )

        if not config.files:
            raise ConfigurationError(
                'Agent config must define either "entry" (template mode) or "files" (simple merge mode).',
                context={"agent": config.name},
            )

        validation = self.validate(config)
        for w in validation.warnings:
            logger.warning(w)
        if not validation.valid:
            raise MissingFilesError(validation.missing)

        merged = self.merge(config)
        output_path = self.write_output(config, merged.content)
        return BuildResult(
            output_path=self._relative(output_path),
            content_length=len(merged.content),
            content_hash=self.content_hash(merged.content),
            files_included=merged.files_included,
            files_skipped=merged.files_skipped,
            warnings=[*validation.warnings, *merged.warnings],
            mode="simple",
        )

    @staticmethod
    def content_hash(content: str) -> str:
        """First 8 hex characters of the content's MD5 digest."""
        return hashlib.md5(content.encode("utf-8")).hexdigest()[:8]


__all__ = ["AgentEntry", "BuildResult", "InstruxEngine", "MergeResult", "ValidationResult"]
