from __future__ import annotations

import json

import pytest

from instrux.cli._dispatcher import build_parser, discover_commands, main


@pytest.fixture
def repo(project):
    project.agent("coder", description="Writes code", entry="main.md")
    project.write("agents/coder/main.md", '# {{agent.name}}\n\n{{tag "rules"}}\n')
    project.source("agents/base/rules.md", "Base rule", tags=["rules"])
    project.write("docs/a.md", "A")
    project.agent("simple", files=[{"path": "docs/a.md"}])
    return project


def _run(repo, *argv: str) -> int:
    return main([*argv, "--repo-root", str(repo.root)])


def test_commands_are_discovered() -> None:
    assert {"build", "config", "list", "validate"} <= set(discover_commands())
    assert build_parser().prog == "instrux"


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 0
    assert "usage: instrux" in capsys.readouterr().out


def test_build_text_output(repo, capsys) -> None:
    assert _run(repo, "build", "coder") == 0

    out = capsys.readouterr().out
    assert "Built coder" in out
    assert "out/coder_instructions.md" in out
    assert "Mode: template" in out
    assert repo.read("out/coder_instructions.md") == "# coder\n\nBase rule\n"


def test_build_json_output(repo, capsys) -> None:
    assert _run(repo, "build", "simple", "--json") == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "success"
    (build,) = payload["builds"]
    assert build["agent"] == "simple"
    assert build["mode"] == "simple"
    assert build["output_path"] == "out/simple_instructions.md"


def test_build_all(repo, capsys) -> None:
    repo.write("agents/broken/agent.yaml", "name: [\n")

    assert _run(repo, "build", "--all") == 0

    out = capsys.readouterr().out
    assert "Skipping broken" in out
    assert repo.exists("out/coder_instructions.md")
    assert repo.exists("out/simple_instructions.md")


def test_build_requires_a_name(repo, capsys) -> None:
    assert _run(repo, "build") == 2
    assert "Error: Agent name required" in capsys.readouterr().err


def test_build_failure_exits_one(repo, capsys) -> None:
    assert _run(repo, "build", "ghost") == 1

    captured = capsys.readouterr()
    assert captured.err.startswith("Error: Agent config not found")
    assert not repo.exists("out")


def test_build_failure_json_carries_error_code(repo, capsys) -> None:
    repo.write("agents/coder/main.md", '{{tag "ghost"}}')

    assert _run(repo, "build", "coder", "--strict-tags", "--json") == 1

    payload = json.loads(capsys.readouterr().err)
    assert payload["error"] == "build_error"
    assert payload["code"] == "EmptyTagError"
    assert payload["context"]["tag"] == "ghost"


def test_list_json(repo, capsys) -> None:
    assert _run(repo, "list", "--json") == 0

    rows = json.loads(capsys.readouterr().out)["agents"]
    assert [r["name"] for r in rows] == ["coder", "simple"]
    assert rows[0]["mode"] == "template"
    assert rows[0]["output"] == "out/coder_instructions.md"
    assert rows[1]["files"] == 1


def test_list_text(repo, capsys) -> None:
    assert _run(repo, "list") == 0

    out = capsys.readouterr().out
    assert "coder  [template]" in out
    assert "Writes code" in out


def test_config_json(repo, capsys) -> None:
    assert _run(repo, "config", "coder", "--json") == 0

    data = json.loads(capsys.readouterr().out)
    assert data["entry"] == "agents/coder/main.md"
    assert data["mode"] == "template"


def test_config_text(repo, capsys) -> None:
    assert _run(repo, "config", "simple") == 0

    out = capsys.readouterr().out
    assert "Mode: simple" in out
    assert "1. docs/a.md  [required]" in out


def test_validate_template_agent(repo, capsys) -> None:
    assert _run(repo, "validate", "coder", "--json") == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["valid"] is True
    assert payload["tags"] == ["rules"]


def test_validate_reports_missing_files(repo, capsys) -> None:
    repo.agent("simple", files=[{"path": "docs/a.md"}, {"path": "docs/gone.md"}])

    assert _run(repo, "validate", "simple") == 1
    assert "missing: docs/gone.md" in capsys.readouterr().out
