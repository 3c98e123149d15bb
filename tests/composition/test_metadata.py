from __future__ import annotations

import pytest

from instrux.core.composition.metadata import (
    DEFAULT_ORDER,
    CompilerMetadata,
    MetadataExtractor,
    default_title,
    serialize_frontmatter,
)
from instrux.core.exceptions import MetadataParseError


def test_text_without_frontmatter_is_returned_unchanged() -> None:
    raw = "# Title\n\nNo metadata here.\n"
    metadata, body = MetadataExtractor().split(raw)

    assert metadata == {}
    assert body == raw


def test_compiler_block_is_separated_from_passthrough_fields() -> None:
    raw = (
        "---\n"
        "title: Code Style\n"
        "audience: devs\n"
        "instrux:\n"
        "  tags: [style, base]\n"
        "  order: 2\n"
        "  description: House style\n"
        "---\n"
        "Body text\n"
    )
    extracted = MetadataExtractor().extract(raw, "style.md")

    assert extracted.has_frontmatter is True
    assert extracted.body == "Body text\n"
    assert extracted.passthrough == {"title": "Code Style", "audience": "devs"}
    assert extracted.compiler.tags == ("style", "base")
    assert extracted.compiler.order == 2
    assert extracted.compiler.description == "House style"
    assert "instrux" in extracted.metadata


def test_missing_compiler_fields_use_defaults() -> None:
    extracted = MetadataExtractor().extract("---\ntitle: X\n---\nbody")

    assert extracted.compiler.tags == ()
    assert extracted.compiler.order == DEFAULT_ORDER
    assert extracted.compiler.description == ""


def test_single_string_tag_becomes_one_element_tuple() -> None:
    compiler = CompilerMetadata.from_dict({"tags": "rules"})
    assert compiler.tags == ("rules",)


def test_duplicate_tags_are_collapsed_in_order() -> None:
    compiler = CompilerMetadata.from_dict({"tags": ["b", "a", "b"]})
    assert compiler.tags == ("b", "a")


def test_non_numeric_order_falls_back_with_warning() -> None:
    warnings: list[str] = []
    compiler = CompilerMetadata.from_dict({"order": "soon"}, warnings=warnings, path="x.md")

    assert compiler.order == DEFAULT_ORDER
    assert len(warnings) == 1
    assert "x.md" in warnings[0]


def test_numeric_string_order_is_accepted() -> None:
    assert CompilerMetadata.from_dict({"order": "3"}).order == 3
    assert CompilerMetadata.from_dict({"order": 1.5}).order == 1.5


def test_malformed_yaml_keeps_raw_text_as_body() -> None:
    raw = "---\ntitle: [unclosed\n---\nImportant content\n"
    extracted = MetadataExtractor().extract(raw, "broken.md")

    assert extracted.metadata == {}
    assert extracted.body == raw
    assert extracted.warnings
    assert "broken.md" in extracted.warnings[0]


def test_non_mapping_frontmatter_is_treated_as_malformed() -> None:
    raw = "---\n- a\n- b\n---\nbody\n"
    extracted = MetadataExtractor().extract(raw, "list.md")

    assert extracted.body == raw
    assert "mapping" in extracted.warnings[0]


def test_strict_extractor_raises_on_malformed_metadata() -> None:
    with pytest.raises(MetadataParseError) as exc_info:
        MetadataExtractor(strict=True).extract("---\ntitle: [unclosed\n---\nbody", "bad.md")

    assert exc_info.value.path == "bad.md"


def test_crlf_frontmatter_is_recognised() -> None:
    raw = "---\r\ntitle: Windows\r\n---\r\nbody\r\n"
    extracted = MetadataExtractor().extract(raw)

    assert extracted.passthrough == {"title": "Windows"}
    assert extracted.body == "body\r\n"


def test_leading_byte_order_mark_is_ignored() -> None:
    extracted = MetadataExtractor().extract("\ufeff---\ntitle: BOM\n---\nbody")
    assert extracted.passthrough == {"title": "BOM"}
    assert extracted.body == "body"


def test_delimiter_must_start_the_file() -> None:
    raw = "intro\n---\ntitle: no\n---\n"
    metadata, body = MetadataExtractor().split(raw)

    assert metadata == {}
    assert body == raw


def test_non_mapping_compiler_block_is_ignored() -> None:
    extracted = MetadataExtractor().extract("---\ninstrux: oops\ntitle: T\n---\nbody", "f.md")

    assert extracted.compiler == CompilerMetadata()
    assert extracted.passthrough == {"title": "T"}
    assert extracted.warnings


def test_serialize_frontmatter_empty_yields_no_block() -> None:
    assert serialize_frontmatter({}) == ""


def test_serialize_frontmatter_writes_delimited_block() -> None:
    assert serialize_frontmatter({"title": "X"}) == "---\ntitle: X\n---\n\n"


def test_default_title_is_file_stem() -> None:
    assert default_title("agents/base/code-style.md") == "code-style"
