from __future__ import annotations

from pathlib import Path

import pytest

from instrux.core.composition import CompositionReport, InstruxCompiler
from instrux.core.config import CompositionConfig
from instrux.core.exceptions import (
    ConfigurationError,
    MaxDepthExceededError,
    MissingEntryError,
    MissingSourcesError,
    SourceReadError,
)


def _config(**overrides) -> CompositionConfig:
    values = {"entry": "src/entry.md", "sources": ("src/**/*.md",), "name": "coder"}
    values.update(overrides)
    return CompositionConfig(**values)


def _write_project(project) -> None:
    project.write("src/entry.md", '# {{agent.name}}\n\n{{tag "rules"}}\n')
    project.source("src/rules/one.md", "Rule one", tags=["rules"], order=1)
    project.source("src/rules/two.md", "Rule two", tags=["rules"], order=2)


def test_missing_entry_fails_before_reading_files(tmp_path: Path) -> None:
    compiler = InstruxCompiler(tmp_path / "does-not-exist", _config(entry=None))

    with pytest.raises(MissingEntryError):
        compiler.compile()


def test_missing_sources_fails_before_reading_files(tmp_path: Path) -> None:
    compiler = InstruxCompiler(tmp_path / "does-not-exist", _config(sources=()))

    with pytest.raises(MissingSourcesError) as exc_info:
        compiler.compile()

    assert isinstance(exc_info.value, ConfigurationError)
    assert exc_info.value.context["agent"] == "coder"


def test_unknown_frontmatter_mode_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        InstruxCompiler(tmp_path, _config(frontmatter_output="keep")).compile()


def test_compile_reports_files_and_tags(project) -> None:
    _write_project(project)

    result = InstruxCompiler(project.root, _config()).compile()

    assert result.output == "# coder\n\nRule one\n---\n\nRule two\n"
    assert result.files_compiled == 3
    assert result.tags_used == ["rules"]
    assert result.warnings == []
    assert result.report.files_indexed == 3
    assert result.report.unique_tags == 1
    assert result.report.files_visited == ["src/entry.md", "src/rules/one.md", "src/rules/two.md"]


def test_compiler_can_be_reused(project) -> None:
    _write_project(project)
    compiler = InstruxCompiler(project.root, _config())

    first = compiler.compile()
    second = compiler.compile()

    assert first.output == second.output
    assert first.files_compiled == second.files_compiled
    assert first.tags_used == second.tags_used


def test_advisories_are_collected_in_the_report(project) -> None:
    project.write("src/entry.md", '{{tag "ghost"}}{{missing}}')
    project.write("src/broken.md", "---\ntitle: [oops\n---\n")

    result = InstruxCompiler(project.root, _config()).compile()

    assert result.output == ""
    assert result.report.empty_tags == ["ghost"]
    assert result.report.variables_missing == ["missing"]
    assert len(result.warnings) == 3


def test_very_long_include_chain_raises_depth_error(project) -> None:
    for i in range(300):
        project.write(f"src/f{i}.md", f'{{{{file "src/f{i + 1}.md"}}}}')
    project.write("src/f300.md", "leaf")
    config = _config(entry="src/f0.md", sources=("src/*.md",), max_depth=1000)

    with pytest.raises(MaxDepthExceededError) as exc_info:
        InstruxCompiler(project.root, config).compile()

    assert exc_info.value.chain[0] == "src/f0.md"
    assert exc_info.value.max_depth == 1000
    assert exc_info.value.to_json_error()["context"]["chain"] == exc_info.value.chain


def test_unreadable_source_aborts_compile(project) -> None:
    project.write("src/entry.md", "Hello")
    (project.root / "src/binary.md").write_bytes(b"\xff\xfe\xfd")

    with pytest.raises(SourceReadError):
        InstruxCompiler(project.root, _config()).compile()


def test_report_serialization_and_summary() -> None:
    report = CompositionReport(
        agent_name="coder", entry="e.md", files_indexed=2, tags_used=["a"], warnings=["careful"]
    )

    data = report.to_dict()
    summary = report.summary()

    assert data["agent_name"] == "coder"
    assert data["warnings"] == ["careful"]
    assert "Composition Report: coder" in summary
    assert "Tags used: a" in summary
    assert "- careful" in summary
