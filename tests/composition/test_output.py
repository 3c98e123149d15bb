from __future__ import annotations

import pytest

from instrux.core.composition import InstruxCompiler, ParsedFile, assemble, normalize_trailing_newline
from instrux.core.config import CompositionConfig


def _compile(project, mode: str) -> str:
    config = CompositionConfig(entry="src/entry.md", sources=("src/*.md",), frontmatter_output=mode)
    return InstruxCompiler(project.root, config).compile().output


def test_preserve_mode_keeps_passthrough_frontmatter_only(project) -> None:
    project.source("src/entry.md", "Hello", title="Agent", tags=["entry"], order=1)

    assert _compile(project, "preserve") == "---\ntitle: Agent\n---\n\nHello\n"


def test_strip_mode_drops_all_frontmatter(project) -> None:
    project.source("src/entry.md", "Hello", title="Agent", tags=["entry"])

    assert _compile(project, "strip") == "Hello\n"


def test_preserve_mode_without_passthrough_writes_no_block(project) -> None:
    project.source("src/entry.md", "Hello", tags=["entry"])

    assert _compile(project, "preserve") == "Hello\n"


def test_preserve_mode_does_not_emit_included_files_frontmatter(project) -> None:
    project.source("src/entry.md", '{{file "src/child.md"}}', title="Top")
    project.source("src/child.md", "Child", title="Nested", tags=["child"])

    assert _compile(project, "preserve") == "---\ntitle: Top\n---\n\nChild\n"


def test_assemble_strips_leading_blank_lines_under_a_header() -> None:
    entry = ParsedFile.from_text("e.md", "---\ntitle: T\n---\n\n\nBody\n")

    assembled = assemble("\n\nBody", entry, "preserve")

    assert assembled.text == "---\ntitle: T\n---\n\nBody\n"
    assert assembled.files_compiled == 0


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("text", "text\n"),
        ("text\n", "text\n"),
        ("text\n\n\n", "text\n"),
        ("text  \n\t\n", "text\n"),
        ("", ""),
        ("\n\n", ""),
    ],
)
def test_normalize_trailing_newline(raw: str, expected: str) -> None:
    assert normalize_trailing_newline(raw) == expected
