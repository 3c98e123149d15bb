"""Node-tree evaluation for instrux templates.

One :class:`TemplateRenderer` is created per file being resolved, holding
only that file's context (agent identity plus its pass-through metadata).
Helpers form a closed set; anything else in helper position is a syntax
error rather than a silent no-op.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from instrux.core.exceptions import TemplateSyntaxError

from .directives import (
    BlockNode,
    Call,
    Expr,
    Literal,
    MustacheNode,
    Node,
    PathExpr,
    SubExpr,
    Template,
    TextNode,
)
from .state import ResolutionState

if TYPE_CHECKING:
    from .resolver import ResolutionEngine

# Inline helpers: include-by-tag, include-by-path, iterate-by-tag, metadata lookup.
HELPERS = ("tag", "file", "tagged", "meta")
BLOCK_HELPERS = ("each", "if", "unless", "with")

_MISSING = object()


@dataclass
class Scope:
    """One level of the lookup chain (``this`` plus ``@`` loop data)."""

    value: Any
    data: Dict[str, Any] = field(default_factory=dict)
    parent: Optional["Scope"] = None

    def chain(self) -> Iterator["Scope"]:
        scope: Optional[Scope] = self
        while scope is not None:
            yield scope
            scope = scope.parent


def is_truthy(value: Any) -> bool:
    """Handlebars truthiness: empty lists, empty strings, 0, None and False are falsy."""
    if isinstance(value, Mapping):
        return True
    return bool(value)


def to_text(value: Any) -> str:
    """Render a looked-up value as text. Output is never HTML-escaped."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(v) for v in value)
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _traverse(value: Any, parts: Sequence[str]) -> Any:
    current = value
    for part in parts:
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        elif isinstance(current, (list, tuple, str)) and part == "length":
            current = len(current)
        else:
            return _MISSING
    return current


class TemplateRenderer:
    """Evaluate a parsed template for one file.

    Args:
        engine: Resolution engine used by the include helpers.
        state: Per-compile state (cycle stack, advisories).
        path: Path of the file being rendered (for messages).
        context: Root scope: ``{"agent": {...}, "meta": {...}}``.
    """

    def __init__(
        self,
        engine: "ResolutionEngine",
        state: ResolutionState,
        path: Optional[str],
        context: Mapping[str, Any],
    ) -> None:
        self.engine = engine
        self.state = state
        self.path = path
        self.context = context

    def render(self, template: Template) -> str:
        root = Scope(self.context, {"root": self.context})
        return self._render_nodes(template.nodes, root)

    # ----- nodes -----

    def _render_nodes(self, nodes: Sequence[Node], scope: Scope) -> str:
        parts: List[str] = []
        for node in nodes:
            if isinstance(node, TextNode):
                parts.append(node.text)
            elif isinstance(node, MustacheNode):
                parts.append(to_text(self._eval_mustache(node.call, scope, node.line)))
            else:
                parts.append(self._render_block(node, scope))
        return "".join(parts)

    def _eval_mustache(self, call: Call, scope: Scope, line: int) -> Any:
        head = call.head
        name = head.helper_name if isinstance(head, PathExpr) else None
        if name == "tagged":
            raise self._error('{{tagged}} returns a list; use it as {{#each (tagged "...")}}', line)
        if name in HELPERS:
            return self._call_helper(name, call.params, call.hash, scope, line)
        if call.has_arguments:
            if name in BLOCK_HELPERS:
                raise self._error(f"'{name}' is a block helper; use {{{{#{name} ...}}}}", line)
            raise self._error(f"Unknown helper '{_describe(head)}'", line)
        return self._eval(head, scope, line)

    def _render_block(self, node: BlockNode, scope: Scope) -> str:
        if node.name not in BLOCK_HELPERS:
            raise self._error(f"Unknown block helper '#{node.name}'", node.line)
        if len(node.params) != 1 or node.hash:
            raise self._error(f"{{{{#{node.name}}}}} expects exactly one argument", node.line)

        value = self._eval(node.params[0], scope, node.line, quiet=True)
        if node.name == "each":
            return self._render_each(node, value, scope)
        if node.name == "if":
            branch = node.body if is_truthy(value) else node.inverse
            return self._render_nodes(branch, scope)
        if node.name == "unless":
            branch = node.inverse if is_truthy(value) else node.body
            return self._render_nodes(branch, scope)
        # with
        if is_truthy(value):
            return self._render_nodes(node.body, Scope(value, {}, scope))
        return self._render_nodes(node.inverse, scope)

    def _render_each(self, node: BlockNode, value: Any, scope: Scope) -> str:
        items: List[Tuple[Any, Any]]
        keyed = isinstance(value, Mapping)
        if keyed:
            items = list(value.items())
        elif isinstance(value, (list, tuple)):
            items = list(enumerate(value))
        else:
            items = []

        if not items:
            return self._render_nodes(node.inverse, scope)

        last = len(items) - 1
        out: List[str] = []
        for i, (key, item) in enumerate(items):
            data: Dict[str, Any] = {"index": i, "first": i == 0, "last": i == last}
            if keyed:
                data["key"] = key
            out.append(self._render_nodes(node.body, Scope(item, data, scope)))
        return "".join(out)

    # ----- expressions -----

    def _eval(self, expr: Expr, scope: Scope, line: int, *, quiet: bool = False) -> Any:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, SubExpr):
            if expr.name not in HELPERS:
                raise self._error(f"Unknown helper '{expr.name}'", line)
            return self._call_helper(expr.name, expr.params, expr.hash, scope, line)

        value = self._lookup(expr, scope)
        if value is _MISSING:
            if not quiet:
                self.state.record_missing_variable(expr.original, self.path, line)
            return None
        return value

    def _lookup(self, expr: PathExpr, scope: Scope) -> Any:
        if expr.data:
            head, rest = expr.parts[0], expr.parts[1:]
            for s in scope.chain():
                if head in s.data:
                    return _traverse(s.data[head], rest)
            return _MISSING
        if expr.this:
            return _traverse(scope.value, expr.parts)
        head = expr.parts[0]
        for s in scope.chain():
            if isinstance(s.value, Mapping) and head in s.value:
                return _traverse(s.value, expr.parts)
        return _MISSING

    # ----- helpers -----

    def _call_helper(
        self,
        name: str,
        params: Sequence[Expr],
        hash_args: Sequence[Tuple[str, Expr]],
        scope: Scope,
        line: int,
    ) -> Any:
        args = [self._eval(p, scope, line) for p in params]
        options = {key: self._eval(value, scope, line) for key, value in hash_args}
        unknown = set(options) - ({"separator"} if name == "tag" else set())
        if unknown:
            raise self._error(f"{{{{{name}}}}} does not accept {', '.join(sorted(unknown))}", line)
        target = self._string_argument(name, args, line)

        if name == "tag":
            separator = options.get("separator")
            return self.engine.include_tag(
                target,
                self.state,
                separator=None if separator is None else to_text(separator),
            )
        if name == "file":
            return self.engine.include_file(target, self.state)
        if name == "tagged":
            return self.engine.tagged_items(target, self.state)
        return self._meta(target)

    def _meta(self, key: str) -> Any:
        meta = self.context.get("meta") or {}
        if key in meta:
            value = meta[key]
        else:
            value = _traverse(meta, key.split("."))
        return "" if value is _MISSING or value is None else value

    def _string_argument(self, name: str, args: Sequence[Any], line: int) -> str:
        if len(args) != 1 or not isinstance(args[0], str) or not args[0].strip():
            raise self._error(f'{{{{{name}}}}} expects one non-empty string argument, e.g. {{{{{name} "..."}}}}', line)
        return args[0].strip()

    def _error(self, message: str, line: Optional[int]) -> TemplateSyntaxError:
        return TemplateSyntaxError(message, path=self.path, line=line)


def _describe(expr: Expr) -> str:
    if isinstance(expr, PathExpr):
        return expr.original
    if isinstance(expr, Literal):
        return repr(expr.value)
    return expr.name


__all__ = ["BLOCK_HELPERS", "HELPERS", "Scope", "TemplateRenderer", "is_truthy", "to_text"]
