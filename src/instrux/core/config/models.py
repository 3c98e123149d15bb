"""Typed configuration models.

Raw YAML/JSON mappings are turned into these dataclasses by
:class:`instrux.core.config.manager.ConfigManager`. Only the resolved forms
(:class:`ResolvedAgentConfig`, :class:`CompositionConfig`) are consumed by
the engine and the compiler.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from instrux.core.exceptions import ConfigurationError, MissingEntryError, MissingSourcesError

FrontmatterMode = Literal["strip", "preserve"]
FRONTMATTER_MODES: Tuple[str, ...] = ("strip", "preserve")

DEFAULT_MAX_DEPTH = 64


@dataclass(frozen=True)
class MergeSettings:
    """Controls how fragments are joined together."""

    add_separators: bool = True
    separator_style: str = "---"
    include_file_headers: bool = False
    preserve_formatting: bool = True
    generate_hash: bool = False
    use_timestamp: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "MergeSettings":
        data = data or {}
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def separator(self) -> str:
        """Separator placed between files included by one tag directive."""
        if self.add_separators:
            return f"\n{self.separator_style}\n\n"
        return "\n\n"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CompositionSettings:
    """Resolution-engine switches (depth cap, strictness, path scoping)."""

    max_depth: int = DEFAULT_MAX_DEPTH
    strict_tags: bool = False
    allow_outside_root: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "CompositionSettings":
        data = data or {}
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class InstruxFile:
    """One entry of a simple-merge agent's ``files`` list."""

    path: str
    description: str = ""
    required: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InstruxFile":
        return cls(
            path=str(data["path"]),
            description=str(data.get("description", "")),
            required=bool(data.get("required", True)),
        )


@dataclass
class RepoConfig:
    """Repository-level configuration (``instrux.yaml``) merged over defaults."""

    agents_directory: str = "agents"
    output_directory: str = "out"
    sources: List[str] = field(default_factory=list)
    merge_settings: Dict[str, Any] = field(default_factory=dict)
    frontmatter_output: FrontmatterMode = "strip"
    composition: CompositionSettings = field(default_factory=CompositionSettings)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RepoConfig":
        return cls(
            agents_directory=str(data.get("agents_directory", "agents")),
            output_directory=str(data.get("output_directory", "out")),
            sources=[str(s) for s in data.get("sources") or []],
            merge_settings=dict(data.get("merge_settings") or {}),
            frontmatter_output=(data.get("frontmatter") or {}).get("output", "strip"),
            composition=CompositionSettings.from_dict(data.get("composition")),
        )


@dataclass
class AgentConfig:
    """Agent-level configuration as written in ``agent.yaml``."""

    name: str
    description: str = ""
    entry: Optional[str] = None
    sources: List[str] = field(default_factory=list)
    files: List[InstruxFile] = field(default_factory=list)
    merge_settings: Dict[str, Any] = field(default_factory=dict)
    frontmatter_output: Optional[FrontmatterMode] = None
    output_directory: Optional[str] = None
    output_file_pattern: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AgentConfig":
        frontmatter = data.get("frontmatter") or {}
        return cls(
            name=str(data["name"]),
            description=str(data.get("description", "")),
            entry=data.get("entry"),
            sources=[str(s) for s in data.get("sources") or []],
            files=[InstruxFile.from_dict(f) for f in data.get("files") or []],
            merge_settings=dict(data.get("merge_settings") or {}),
            frontmatter_output=frontmatter.get("output"),
            output_directory=data.get("output_directory"),
            output_file_pattern=data.get("output_file_pattern"),
        )


@dataclass(frozen=True)
class CompositionConfig:
    """Caller-supplied settings for one compile run. Read-only during compilation."""

    entry: Optional[str]
    sources: Tuple[str, ...]
    separator: str = MergeSettings().separator
    frontmatter_output: FrontmatterMode = "strip"
    name: str = ""
    description: str = ""
    max_depth: Optional[int] = DEFAULT_MAX_DEPTH
    strict_tags: bool = False
    allow_outside_root: bool = False

    def validate(self) -> None:
        """Raise a configuration error before any file I/O is attempted."""
        if not self.entry:
            raise MissingEntryError(self.name or None)
        if not self.sources:
            raise MissingSourcesError(self.name or None)
        if self.frontmatter_output not in FRONTMATTER_MODES:
            raise ConfigurationError(
                f"Invalid frontmatter output mode {self.frontmatter_output!r}; "
                f"expected one of {', '.join(FRONTMATTER_MODES)}"
            )


@dataclass(frozen=True)
class ResolvedAgentConfig:
    """Agent config after merging with repo config and defaults."""

    name: str
    description: str
    agents_directory: str
    agent_directory: str
    output_directory: str
    output_file_pattern: str
    merge_settings: MergeSettings
    frontmatter_output: FrontmatterMode
    composition: CompositionSettings
    entry: Optional[str] = None
    sources: Tuple[str, ...] = ()
    files: Tuple[InstruxFile, ...] = ()

    @property
    def is_compile_mode(self) -> bool:
        return bool(self.entry)

    def composition_config(self) -> CompositionConfig:
        return CompositionConfig(
            entry=self.entry,
            sources=self.sources,
            separator=self.merge_settings.separator,
            frontmatter_output=self.frontmatter_output,
            name=self.name,
            description=self.description,
            max_depth=self.composition.max_depth,
            strict_tags=self.composition.strict_tags,
            allow_outside_root=self.composition.allow_outside_root,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "mode": "template" if self.is_compile_mode else "simple",
            "agents_directory": self.agents_directory,
            "agent_directory": self.agent_directory,
            "output_directory": self.output_directory,
            "output_file_pattern": self.output_file_pattern,
            "entry": self.entry,
            "sources": list(self.sources),
            "files": [asdict(f) for f in self.files],
            "merge_settings": self.merge_settings.to_dict(),
            "frontmatter": {"output": self.frontmatter_output},
            "composition": asdict(self.composition),
        }


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "FRONTMATTER_MODES",
    "FrontmatterMode",
    "AgentConfig",
    "CompositionConfig",
    "CompositionSettings",
    "InstruxFile",
    "MergeSettings",
    "RepoConfig",
    "ResolvedAgentConfig",
]
