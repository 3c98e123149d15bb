"""Shared builders for instrux tests."""
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml


def frontmatter(
    body: str,
    *,
    tags: Optional[Iterable[str]] = None,
    order: Any = None,
    description: Optional[str] = None,
    **fields: Any,
) -> str:
    """Build a markdown source with an optional ``instrux:`` block and pass-through fields."""
    data: Dict[str, Any] = dict(fields)
    compiler: Dict[str, Any] = {}
    if tags is not None:
        compiler["tags"] = list(tags)
    if order is not None:
        compiler["order"] = order
    if description is not None:
        compiler["description"] = description
    if compiler:
        data["instrux"] = compiler
    if not data:
        return body
    return f"---\n{yaml.safe_dump(data, sort_keys=False)}---\n{body}"


class ProjectBuilder:
    """Writes a throwaway instrux project under ``tmp_path``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def write(self, rel_path: str, content: str) -> Path:
        path = self.root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def source(self, rel_path: str, body: str, **meta: Any) -> Path:
        return self.write(rel_path, frontmatter(body, **meta))

    def repo_config(self, data: Dict[str, Any], name: str = "instrux.yaml") -> Path:
        return self.write(name, yaml.safe_dump(data, sort_keys=False))

    def agent(self, name: str, **config: Any) -> Path:
        data = {"name": name, **config}
        return self.write(f"agents/{name}/agent.yaml", yaml.safe_dump(data, sort_keys=False))

    def read(self, rel_path: str) -> str:
        return (self.root / rel_path).read_text(encoding="utf-8")

    def exists(self, rel_path: str) -> bool:
        return (self.root / rel_path).exists()
