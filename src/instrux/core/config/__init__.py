"""Configuration for instrux (repository, agent and composition settings)."""
from __future__ import annotations

from .manager import AGENT_CONFIG_NAMES, ENV_PREFIX, REPO_CONFIG_NAMES, ConfigManager
from .models import (
    DEFAULT_MAX_DEPTH,
    FRONTMATTER_MODES,
    AgentConfig,
    CompositionConfig,
    CompositionSettings,
    FrontmatterMode,
    InstruxFile,
    MergeSettings,
    RepoConfig,
    ResolvedAgentConfig,
)

__all__ = [
    "AGENT_CONFIG_NAMES",
    "DEFAULT_MAX_DEPTH",
    "ENV_PREFIX",
    "FRONTMATTER_MODES",
    "REPO_CONFIG_NAMES",
    "AgentConfig",
    "CompositionConfig",
    "CompositionSettings",
    "ConfigManager",
    "FrontmatterMode",
    "InstruxFile",
    "MergeSettings",
    "RepoConfig",
    "ResolvedAgentConfig",
]
