"""
instrux configuration management.

Configuration sources (highest to lowest priority):
1. Agent config: <agents_directory>/<Name>/agent.yaml (or agent.json)
2. Environment variables: INSTRUX_* (applied to the repository layer)
3. Repository config: instrux.yaml / instrux.yml / instrux.json at the root
4. Bundled defaults: instrux.data/config/defaults.yaml

Invalid YAML/JSON and schema violations fail closed with a
:class:`ConfigurationError` naming the offending file.
"""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import yaml

from instrux.core.exceptions import AgentNotFoundError, ConfigurationError
from instrux.core.schemas import SchemaValidationError, validate_payload
from instrux.core.utils import deep_merge, read_json, read_yaml
from instrux.data import read_yaml as read_data_yaml

from .models import (
    AgentConfig,
    MergeSettings,
    RepoConfig,
    ResolvedAgentConfig,
)

logger = logging.getLogger(__name__)

REPO_CONFIG_NAMES: Tuple[str, ...] = ("instrux.yaml", "instrux.yml", "instrux.json")
AGENT_CONFIG_NAMES: Tuple[str, ...] = ("agent.yaml", "agent.yml", "agent.json")
BASE_DIRECTORY = "base"
ENV_PREFIX = "INSTRUX_"


class ConfigManager:
    """Load, merge, and validate instrux configuration for one project root."""

    def __init__(self, root_dir: Path, *, environ: Optional[Mapping[str, str]] = None) -> None:
        self.root_dir = Path(root_dir)
        self._environ = os.environ if environ is None else environ
        self._repo_config: Optional[RepoConfig] = None

    # ----- file loading -----

    def _load_mapping(self, path: Path, schema_name: str) -> Dict[str, Any]:
        try:
            if path.suffix == ".json":
                data = read_json(path, default={}, raise_on_error=True)
            else:
                data = read_yaml(path, default={}, raise_on_error=True)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(
                f"Failed to parse {self._display(path)}: {exc}",
                context={"path": str(path)},
            ) from exc

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{self._display(path)} must contain a mapping, got {type(data).__name__}",
                context={"path": str(path)},
            )
        self._validate(data, schema_name, self._display(path))
        return data

    def _validate(self, data: Dict[str, Any], schema_name: str, source: str) -> None:
        try:
            validate_payload(data, schema_name)
        except SchemaValidationError as exc:
            raise ConfigurationError(
                f"Invalid configuration in {source}:\n" + "\n".join(f"  - {e}" for e in exc.errors),
                context={"source": source, "errors": exc.errors},
            ) from exc

    def _display(self, path: Path) -> str:
        try:
            return path.relative_to(self.root_dir).as_posix()
        except ValueError:
            return str(path)

    @staticmethod
    def _first_existing(directory: Path, names: Tuple[str, ...]) -> Optional[Path]:
        for name in names:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return None

    # ----- environment overrides -----

    def _coerce_type(self, value: str) -> Any:
        s = value.strip()
        low = s.lower()
        if low in {"true", "false"}:
            return low == "true"
        if re.fullmatch(r"[-+]?\d+", s):
            return int(s)
        if re.fullmatch(r"[-+]?\d*\.\d+", s) or re.fullmatch(r"[-+]?\d+\.\d*", s):
            return float(s)
        if (s.startswith("[") and s.endswith("]")) or (s.startswith("{") and s.endswith("}")):
            try:
                return json.loads(s)
            except ValueError:
                return s
        return s

    def _iter_env_overrides(self) -> Iterator[Tuple[List[str], Any]]:
        for key in sorted(self._environ.keys()):
            if not key.startswith(ENV_PREFIX):
                continue
            raw = key[len(ENV_PREFIX):]
            segs = raw.split("__")
            if not raw or any(seg == "" for seg in segs):
                raise ConfigurationError(f"Malformed {ENV_PREFIX}* key: {key}")
            yield [seg.lower() for seg in segs], self._coerce_type(self._environ[key])

    def apply_env_overrides(self, cfg: Dict[str, Any]) -> Dict[str, Any]:
        """Return ``cfg`` with ``INSTRUX_a__b=value`` overrides applied."""
        result = dict(cfg)
        for path, value in self._iter_env_overrides():
            override: Dict[str, Any] = {path[-1]: value}
            for seg in reversed(path[:-1]):
                override = {seg: override}
            result = deep_merge(result, override)
        return result

    # ----- repository config -----

    def repo_config_path(self) -> Optional[Path]:
        return self._first_existing(self.root_dir, REPO_CONFIG_NAMES)

    def load_repo_config(self) -> RepoConfig:
        """Load the repository config merged over bundled defaults (cached)."""
        if self._repo_config is not None:
            return self._repo_config

        cfg: Dict[str, Any] = dict(read_data_yaml("config", "defaults.yaml"))
        path = self.repo_config_path()
        if path is not None:
            cfg = deep_merge(cfg, self._load_mapping(path, "repo-config"))
            logger.debug("Loaded repository config from %s", path)

        env_cfg = self.apply_env_overrides(cfg)
        if env_cfg != cfg:
            self._validate(env_cfg, "repo-config", f"{ENV_PREFIX}* environment overrides")
            cfg = env_cfg

        self._repo_config = RepoConfig.from_dict(cfg)
        return self._repo_config

    # ----- agent config -----

    def agents_dir(self) -> Path:
        return self.root_dir / self.load_repo_config().agents_directory

    def agent_config_path(self, agent_name: str) -> Path:
        """Return the existing agent config path, or the canonical one when absent."""
        agent_dir = self.agents_dir() / agent_name
        found = self._first_existing(agent_dir, AGENT_CONFIG_NAMES)
        return found or agent_dir / AGENT_CONFIG_NAMES[0]

    def load_agent_config(self, agent_name: str) -> AgentConfig:
        path = self.agent_config_path(agent_name)
        if not path.is_file():
            raise AgentNotFoundError(agent_name, self._display(path))
        return AgentConfig.from_dict(self._load_mapping(path, "agent-config"))

    def try_load_agent_config(self, agent_dir: Path) -> Optional[AgentConfig]:
        """Load an agent config from a directory, returning None when absent or invalid."""
        path = self._first_existing(agent_dir, AGENT_CONFIG_NAMES)
        if path is None:
            return None
        try:
            return AgentConfig.from_dict(self._load_mapping(path, "agent-config"))
        except ConfigurationError as exc:
            logger.warning("Ignoring invalid agent config %s: %s", self._display(path), exc)
            return None

    def resolve(self, agent: AgentConfig, repo: RepoConfig) -> ResolvedAgentConfig:
        """Merge an agent config with the repository config.

        The entry is always relative to the agent's directory. Sources are the
        agent's own directory, then agent-specific globs, then repository globs
        (relative to the agents directory), falling back to ``<agents>/base``.
        """
        agents_directory = repo.agents_directory.rstrip("/")
        agent_dir = f"{agents_directory}/{agent.name}"

        entry = f"{agent_dir}/{agent.entry}" if agent.entry else None

        sources: List[str] = [f"{agent_dir}/**/*.md"]
        sources.extend(agent.sources)
        if repo.sources:
            sources.extend(f"{agents_directory}/{s}" for s in repo.sources)
        else:
            sources.append(f"{agents_directory}/{BASE_DIRECTORY}/**/*.md")

        merge_settings = MergeSettings.from_dict(deep_merge(repo.merge_settings, agent.merge_settings))

        return ResolvedAgentConfig(
            name=agent.name,
            description=agent.description,
            agents_directory=agents_directory,
            agent_directory=agent_dir,
            output_directory=agent.output_directory or repo.output_directory,
            output_file_pattern=agent.output_file_pattern or f"{agent.name.lower()}_instructions.md",
            merge_settings=merge_settings,
            frontmatter_output=agent.frontmatter_output or repo.frontmatter_output,
            composition=repo.composition,
            entry=entry,
            sources=tuple(sources),
            files=tuple(agent.files),
        )

    def load(self, agent_name: str, *, strict_tags: Optional[bool] = None) -> ResolvedAgentConfig:
        """Load and resolve the config for ``agent_name``."""
        repo = self.load_repo_config()
        if strict_tags is not None:
            repo = replace(repo, composition=replace(repo.composition, strict_tags=strict_tags))
        return self.resolve(self.load_agent_config(agent_name), repo)


__all__ = ["ConfigManager", "REPO_CONFIG_NAMES", "AGENT_CONFIG_NAMES", "ENV_PREFIX"]
