"""Directive parsing for instrux templates.

Templates use Handlebars-style mustaches::

    {{tag "rules"}}                     include every file tagged ``rules``
    {{file "agents/base/intro.md"}}     include one file by path
    {{#each (tagged "skills")}}         iterate files tagged ``skills``
      ## {{title}}
      {{body}}
    {{/each}}
    {{meta "audience"}}                 current file's frontmatter value

A source is parsed once into a node tree. Rendering walks that tree, so text
produced by an include is substituted verbatim and never scanned again.

Standalone block tags (``{{#each}}``, ``{{/if}}``, ``{{else}}``, comments) that
sit alone on a line take the whole line with them, as in Handlebars. ``~``
inside a tag trims the whitespace on that side.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from instrux.core.exceptions import TemplateSyntaxError

# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class PathExpr:
    """A variable reference.

    ``parts`` are the dotted segments after any ``this``/``@`` prefix;
    ``this`` pins the lookup to the innermost scope and ``data`` marks
    ``@index``-style loop data.
    """

    parts: Tuple[str, ...]
    original: str
    this: bool = False
    data: bool = False

    @property
    def helper_name(self) -> Optional[str]:
        """Name usable as a helper (a single bare segment), else None."""
        if self.this or self.data or len(self.parts) != 1:
            return None
        return self.parts[0]


@dataclass(frozen=True)
class SubExpr:
    """A parenthesised helper call used as an argument: ``(tagged "x")``."""

    name: str
    params: Tuple["Expr", ...] = ()
    hash: Tuple[Tuple[str, "Expr"], ...] = ()


Expr = Union[Literal, PathExpr, SubExpr]


@dataclass(frozen=True)
class Call:
    """Head expression plus positional and ``key=value`` arguments."""

    head: Expr
    params: Tuple[Expr, ...] = ()
    hash: Tuple[Tuple[str, Expr], ...] = ()

    @property
    def has_arguments(self) -> bool:
        return bool(self.params or self.hash)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass
class TextNode:
    text: str


@dataclass
class MustacheNode:
    call: Call
    line: int


@dataclass
class BlockNode:
    name: str
    params: Tuple[Expr, ...]
    hash: Tuple[Tuple[str, Expr], ...]
    line: int
    body: List["Node"] = field(default_factory=list)
    inverse: List["Node"] = field(default_factory=list)


Node = Union[TextNode, MustacheNode, BlockNode]


@dataclass
class Template:
    nodes: List[Node]
    path: Optional[str] = None


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

TEXT = "text"
MUSTACHE = "mustache"
OPEN = "open"
CLOSE = "close"
ELSE = "else"
COMMENT = "comment"

_STANDALONE_KINDS = frozenset({OPEN, CLOSE, ELSE, COMMENT})
_LEADING_LINE = re.compile(r"[ \t]*(?:\r?\n|\Z)")


@dataclass
class Token:
    kind: str
    value: str
    line: int
    strip_left: bool = False
    strip_right: bool = False


def _line_at(source: str, pos: int) -> int:
    return source.count("\n", 0, pos) + 1


def _classify(inner: str) -> Tuple[str, str]:
    if inner.startswith("#"):
        return OPEN, inner[1:].strip()
    if inner.startswith("/"):
        return CLOSE, inner[1:].strip()
    if inner == "else" or inner.startswith(("else ", "else\t")):
        return ELSE, inner[4:].strip()
    if inner == "^":
        return ELSE, ""
    if inner.startswith("&"):
        return MUSTACHE, inner[1:].strip()
    return MUSTACHE, inner


def tokenize(source: str, path: Optional[str] = None) -> List[Token]:
    """Split ``source`` into text and tag tokens."""
    tokens: List[Token] = []
    pending_text: List[str] = []
    text_line = 1
    pos = 0
    n = len(source)

    def flush() -> None:
        if pending_text:
            tokens.append(Token(TEXT, "".join(pending_text), text_line))
            pending_text.clear()

    while pos < n:
        idx = source.find("{{", pos)
        if idx == -1:
            if not pending_text:
                text_line = _line_at(source, pos)
            pending_text.append(source[pos:])
            break

        if idx > 0 and source[idx - 1] == "\\":
            if not pending_text:
                text_line = _line_at(source, pos)
            pending_text.append(source[pos:idx - 1])
            pending_text.append("{{")
            pos = idx + 2
            continue

        if idx > pos:
            if not pending_text:
                text_line = _line_at(source, pos)
            pending_text.append(source[pos:idx])
        flush()
        line = _line_at(source, idx)

        if source.startswith("{{!--", idx):
            end = source.find("--}}", idx + 5)
            if end == -1:
                raise TemplateSyntaxError("Unclosed comment '{{!--'", path=path, line=line)
            tokens.append(Token(COMMENT, "", line))
            pos = end + 4
            continue
        if source.startswith("{{!", idx):
            end = source.find("}}", idx + 3)
            if end == -1:
                raise TemplateSyntaxError("Unclosed comment '{{!'", path=path, line=line)
            tokens.append(Token(COMMENT, "", line))
            pos = end + 2
            continue

        triple = source.startswith("{{{", idx)
        opener, closer = ("{{{", "}}}") if triple else ("{{", "}}")
        start = idx + len(opener)
        end = source.find(closer, start)
        if end == -1:
            raise TemplateSyntaxError(f"Unclosed '{opener}'", path=path, line=line)

        inner = source[start:end]
        strip_left = inner.startswith("~")
        strip_right = inner.endswith("~") and len(inner) > int(strip_left)
        if strip_left:
            inner = inner[1:]
        if strip_right:
            inner = inner[:-1]
        inner = inner.strip()
        if not inner:
            raise TemplateSyntaxError("Empty directive", path=path, line=line)

        kind, value = _classify(inner)
        if triple and kind != MUSTACHE:
            raise TemplateSyntaxError(f"Block tags cannot use '{{{{{{': {inner}", path=path, line=line)
        tokens.append(Token(kind, value, line, strip_left, strip_right))
        pos = end + len(closer)

    flush()
    _strip_standalone(tokens)
    _apply_whitespace_control(tokens)
    return tokens


def _is_standalone(tokens: List[Token], i: int) -> bool:
    prev = tokens[i - 1] if i > 0 else None
    nxt = tokens[i + 1] if i + 1 < len(tokens) else None
    if prev is not None and prev.kind != TEXT:
        return False
    if nxt is not None and nxt.kind != TEXT:
        return False

    if prev is not None:
        head_start = prev.value.rfind("\n")
        if head_start == -1 and i - 1 != 0:
            return False
        if prev.value[head_start + 1:].strip(" \t"):
            return False

    if nxt is not None:
        newline = nxt.value.find("\n")
        if newline == -1:
            return i + 1 == len(tokens) - 1 and not nxt.value.strip(" \t")
        if nxt.value[:newline].strip(" \t\r"):
            return False
    return True


def _strip_standalone(tokens: List[Token]) -> None:
    standalone = [
        i for i, tok in enumerate(tokens) if tok.kind in _STANDALONE_KINDS and _is_standalone(tokens, i)
    ]
    for i in standalone:
        if i > 0:
            prev = tokens[i - 1]
            prev.value = prev.value.rstrip(" \t")
        if i + 1 < len(tokens):
            nxt = tokens[i + 1]
            nxt.value = _LEADING_LINE.sub("", nxt.value, count=1)


def _apply_whitespace_control(tokens: List[Token]) -> None:
    for i, tok in enumerate(tokens):
        if tok.kind == TEXT:
            continue
        if tok.strip_left and i > 0 and tokens[i - 1].kind == TEXT:
            tokens[i - 1].value = tokens[i - 1].value.rstrip()
        if tok.strip_right and i + 1 < len(tokens) and tokens[i + 1].kind == TEXT:
            tokens[i + 1].value = tokens[i + 1].value.lstrip()


# ---------------------------------------------------------------------------
# Expression parser
# ---------------------------------------------------------------------------

_EXPR_TOKEN = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<lparen>\()
    | (?P<rparen>\))
    | (?P<hash>[A-Za-z_][\w-]*)=
    | (?P<number>-?\d+(?:\.\d+)?)(?![\w.])
    | (?P<path>@?[A-Za-z_][\w-]*(?:\.[\w-]+)*|\.)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}


def _lex(text: str, path: Optional[str], line: int) -> List[Tuple[str, str]]:
    out: List[Tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        m = _EXPR_TOKEN.match(text, pos)
        if not m:
            raise TemplateSyntaxError(
                f"Unexpected {text[pos]!r} in directive '{{{{{text}}}}}'", path=path, line=line
            )
        kind = m.lastgroup or ""
        if kind != "ws":
            out.append((kind, m.group(kind)))
        pos = m.end()
    return out


_ESCAPES = {"n": "\n", "t": "\t"}


def _unquote(token: str) -> str:
    """Strip quotes; ``\\n`` and ``\\t`` become control characters, other escapes the bare character."""
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), token[1:-1])


def _path_expr(token: str) -> Expr:
    if token in _KEYWORDS:
        return Literal(_KEYWORDS[token])
    if token in (".", "this"):
        return PathExpr((), token, this=True)
    if token.startswith("@"):
        return PathExpr(tuple(token[1:].split(".")), token, data=True)
    parts = tuple(token.split("."))
    if parts[0] == "this":
        return PathExpr(parts[1:], token, this=True)
    return PathExpr(parts, token)


class _ExprParser:
    def __init__(self, text: str, path: Optional[str], line: int) -> None:
        self.text = text
        self.path = path
        self.line = line
        self.tokens = _lex(text, path, line)
        self.pos = 0

    def error(self, message: str) -> TemplateSyntaxError:
        return TemplateSyntaxError(f"{message} in '{{{{{self.text}}}}}'", path=self.path, line=self.line)

    def peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> Tuple[str, str]:
        tok = self.peek()
        if tok is None:
            raise self.error("Unexpected end of directive")
        self.pos += 1
        return tok

    def parse_call(self) -> Call:
        head = self.parse_value()
        params, hash_args = self.parse_arguments(stop_at_rparen=False)
        if self.peek() is not None:
            raise self.error(f"Unexpected {self.peek()[1]!r}")
        return Call(head, params, hash_args)

    def parse_arguments(self, *, stop_at_rparen: bool) -> Tuple[Tuple[Expr, ...], Tuple[Tuple[str, Expr], ...]]:
        params: List[Expr] = []
        hash_args: List[Tuple[str, Expr]] = []
        while True:
            tok = self.peek()
            if tok is None or (stop_at_rparen and tok[0] == "rparen"):
                break
            if tok[0] == "hash":
                self.take()
                hash_args.append((tok[1], self.parse_value()))
                continue
            if hash_args:
                raise self.error("Positional argument after key=value argument")
            params.append(self.parse_value())
        return tuple(params), tuple(hash_args)

    def parse_value(self) -> Expr:
        kind, value = self.take()
        if kind == "string":
            return Literal(_unquote(value))
        if kind == "number":
            return Literal(float(value) if "." in value else int(value))
        if kind == "path":
            return _path_expr(value)
        if kind == "lparen":
            name_kind, name = self.take()
            if name_kind != "path":
                raise self.error("Expected a helper name after '('")
            params, hash_args = self.parse_arguments(stop_at_rparen=True)
            closing = self.take()
            if closing[0] != "rparen":
                raise self.error("Expected ')'")
            return SubExpr(name, params, hash_args)
        raise self.error(f"Unexpected {value!r}")


def parse_call(text: str, path: Optional[str] = None, line: int = 0) -> Call:
    """Parse the inside of a tag (``tag "rules" separator="\\n"``) into a :class:`Call`."""
    return _ExprParser(text, path, line).parse_call()


# ---------------------------------------------------------------------------
# Template parser
# ---------------------------------------------------------------------------


@dataclass
class _Frame:
    block: BlockNode
    chained: bool = False
    in_inverse: bool = False

    @property
    def target(self) -> List[Node]:
        return self.block.inverse if self.in_inverse else self.block.body


def _block_from(value: str, path: Optional[str], line: int) -> BlockNode:
    call = parse_call(value, path, line)
    name = call.head.helper_name if isinstance(call.head, PathExpr) else None
    if not name:
        raise TemplateSyntaxError(f"Invalid block name in '{{{{#{value}}}}}'", path=path, line=line)
    return BlockNode(name, call.params, call.hash, line)


def parse(source: str, path: Optional[str] = None) -> Template:
    """Parse template ``source`` into a node tree.

    Raises:
        TemplateSyntaxError: On unbalanced or mismatched blocks and malformed
            directives, naming ``path`` and the line.
    """
    root: List[Node] = []
    stack: List[_Frame] = []

    for tok in tokenize(source, path):
        target = stack[-1].target if stack else root

        if tok.kind == TEXT:
            if tok.value:
                target.append(TextNode(tok.value))
        elif tok.kind == COMMENT:
            continue
        elif tok.kind == MUSTACHE:
            target.append(MustacheNode(parse_call(tok.value, path, tok.line), tok.line))
        elif tok.kind == OPEN:
            block = _block_from(tok.value, path, tok.line)
            target.append(block)
            stack.append(_Frame(block))
        elif tok.kind == ELSE:
            if not stack:
                raise TemplateSyntaxError("{{else}} outside of a block", path=path, line=tok.line)
            frame = stack[-1]
            if frame.in_inverse:
                raise TemplateSyntaxError(
                    f"Duplicate {{{{else}}}} in {{{{#{frame.block.name}}}}}", path=path, line=tok.line
                )
            frame.in_inverse = True
            if tok.value:
                chained = _block_from(tok.value, path, tok.line)
                frame.block.inverse.append(chained)
                stack.append(_Frame(chained, chained=True))
        elif tok.kind == CLOSE:
            while stack and stack[-1].chained:
                stack.pop()
            if not stack:
                raise TemplateSyntaxError(f"Unexpected {{{{/{tok.value}}}}}", path=path, line=tok.line)
            frame = stack.pop()
            if frame.block.name != tok.value:
                raise TemplateSyntaxError(
                    f"{{{{#{frame.block.name}}}}} (line {frame.block.line}) closed by {{{{/{tok.value}}}}}",
                    path=path,
                    line=tok.line,
                )

    if stack:
        unclosed = next(f for f in reversed(stack) if not f.chained)
        raise TemplateSyntaxError(
            f"Unclosed {{{{#{unclosed.block.name}}}}}", path=path, line=unclosed.block.line
        )
    return Template(root, path)


__all__ = [
    "BlockNode",
    "Call",
    "Expr",
    "Literal",
    "MustacheNode",
    "Node",
    "PathExpr",
    "SubExpr",
    "Template",
    "TextNode",
    "Token",
    "parse",
    "parse_call",
    "tokenize",
]
