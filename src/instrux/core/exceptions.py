from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

CHAIN_ARROW = " → "


class InstruxError(Exception):
    """Base exception for instrux."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Configuration errors (raised before any source file is read)
# ---------------------------------------------------------------------------


class ConfigurationError(InstruxError):
    """Raised when configuration is missing, malformed, or fails validation."""


class MissingEntryError(ConfigurationError):
    """Raised when a compile is requested without an entry template."""

    def __init__(self, agent: str | None = None) -> None:
        who = f" for agent '{agent}'" if agent else ""
        super().__init__(
            f'No "entry" configured{who}. Use "files" for simple merge mode.',
            context={"agent": agent},
        )


class MissingSourcesError(ConfigurationError):
    """Raised when a compile is requested without source patterns."""

    def __init__(self, agent: str | None = None) -> None:
        who = f" for agent '{agent}'" if agent else ""
        super().__init__(
            f'No "sources" patterns defined{who}. Add source globs to the agent config.',
            context={"agent": agent},
        )


class AgentNotFoundError(ConfigurationError, FileNotFoundError):
    """Raised when an agent config file cannot be found."""

    def __init__(self, agent: str, config_path: str) -> None:
        message = (
            f"Agent config not found: {config_path}\n"
            f"Create {config_path} to define agent '{agent}'."
        )
        ConfigurationError.__init__(self, message, context={"agent": agent, "path": config_path})
        FileNotFoundError.__init__(self, message)


# ---------------------------------------------------------------------------
# Composition errors
# ---------------------------------------------------------------------------


class CompositionError(InstruxError):
    """Raised when compiling a document fails."""


class CircularReferenceError(CompositionError):
    """Raised when a file is included while it is still being resolved."""

    def __init__(self, chain: Sequence[str]) -> None:
        self.chain = list(chain)
        super().__init__(
            "Circular reference detected:\n  " + CHAIN_ARROW.join(self.chain),
            context={"chain": self.chain},
        )


class MaxDepthExceededError(CompositionError):
    """Raised when an include chain grows past the configured depth limit."""

    def __init__(self, chain: Sequence[str], max_depth: int | None) -> None:
        self.chain = list(chain)
        self.max_depth = max_depth
        limit = f">{max_depth}" if max_depth is not None else "stack limit"
        super().__init__(
            f"Include depth exceeded ({limit}):\n  " + CHAIN_ARROW.join(self.chain),
            context={"chain": self.chain, "max_depth": max_depth},
        )


class SourceNotFoundError(CompositionError, FileNotFoundError):
    """Raised when a referenced file is neither indexed nor on disk."""

    def __init__(self, path: str, *, included_from: str | None = None) -> None:
        self.path = path
        message = f"File not found: {path}"
        if included_from:
            message += f" (included from {included_from})"
        CompositionError.__init__(self, message, context={"path": path, "included_from": included_from})
        FileNotFoundError.__init__(self, message)


class SourceReadError(CompositionError, OSError):
    """Raised when a matched source file cannot be read during indexing."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        message = f"Failed to read source file {path}: {reason}"
        CompositionError.__init__(self, message, context={"path": path, "reason": reason})
        OSError.__init__(self, message)


class PathOutsideRootError(CompositionError):
    """Raised when a path include resolves outside the project root."""

    def __init__(self, path: str, root: str) -> None:
        self.path = path
        super().__init__(
            f"Refusing to include {path}: resolves outside the project root {root}",
            context={"path": path, "root": root},
        )


class EmptyTagError(CompositionError):
    """Raised in strict mode when a tag directive matches no files."""

    def __init__(self, tag: str, path: str | None = None) -> None:
        self.tag = tag
        where = f" (in {path})" if path else ""
        super().__init__(f'Tag "{tag}" matched 0 files{where}', context={"tag": tag, "path": path})


class TemplateSyntaxError(CompositionError):
    """Raised when a directive cannot be parsed or names an unknown helper."""

    def __init__(self, message: str, *, path: str | None = None, line: int | None = None) -> None:
        self.path = path
        self.line = line
        location = ""
        if path:
            location = f" [{path}" + (f":{line}" if line else "") + "]"
        super().__init__(f"{message}{location}", context={"path": path, "line": line})


class MetadataParseError(CompositionError):
    """Raised when a frontmatter block cannot be parsed as a YAML mapping."""

    def __init__(self, path: str | None, reason: str) -> None:
        self.path = path
        where = path or "<string>"
        super().__init__(f"Invalid frontmatter in {where}: {reason}", context={"path": path, "reason": reason})


# ---------------------------------------------------------------------------
# Build errors
# ---------------------------------------------------------------------------


class MissingFilesError(InstruxError):
    """Raised when required files of a simple-merge agent are missing."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        listing = "\n".join(f"  - {m}" for m in self.missing)
        super().__init__(f"Missing required files:\n{listing}", context={"missing": self.missing})


__all__ = [
    "InstruxError",
    "ConfigurationError",
    "MissingEntryError",
    "MissingSourcesError",
    "AgentNotFoundError",
    "CompositionError",
    "CircularReferenceError",
    "MaxDepthExceededError",
    "SourceNotFoundError",
    "SourceReadError",
    "PathOutsideRootError",
    "EmptyTagError",
    "TemplateSyntaxError",
    "MetadataParseError",
    "MissingFilesError",
]
