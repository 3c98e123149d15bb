from __future__ import annotations

from pathlib import Path

import pytest

from helpers import ProjectBuilder
from instrux.core.composition import ResolutionState, build_source_index, resolve_file
from instrux.core.exceptions import (
    CircularReferenceError,
    EmptyTagError,
    MaxDepthExceededError,
    PathOutsideRootError,
    SourceNotFoundError,
    TemplateSyntaxError,
)


def _resolve(project: ProjectBuilder, entry: str = "entry.md", patterns=("*.md",), **options):
    index = build_source_index(project.root, list(patterns))
    state = ResolutionState()
    return resolve_file(entry, index, state, **options), state


def test_resolution_is_deterministic(project) -> None:
    project.write("entry.md", 'Start\n{{tag "rules"}}\nEnd')
    project.source("b.md", "Rule B", tags=["rules"])
    project.source("a.md", "Rule A", tags=["rules"])

    first, _ = _resolve(project)
    second, _ = _resolve(project)

    assert first == second
    assert first.index("Rule A") < first.index("Rule B")


def test_tag_files_ordered_by_order_then_path(project) -> None:
    project.write("entry.md", '{{tag "x" separator="|"}}')
    project.source("a.md", "A", tags=["x"], order=2)
    project.source("b.md", "B", tags=["x"], order=1)
    project.source("d.md", "D", tags=["x"])
    project.source("c.md", "C", tags=["x"])

    output, state = _resolve(project)

    assert output == "B|A|C|D"
    assert state.referenced_tags == {"x"}


def test_default_separator_joins_tagged_files(project) -> None:
    project.write("entry.md", '{{tag "x"}}')
    project.source("a.md", "A", tags=["x"])
    project.source("b.md", "B", tags=["x"])

    output, _ = _resolve(project)

    assert output == "A\n---\n\nB"


def test_separator_option_overrides_engine_default(project) -> None:
    project.write("entry.md", '{{tag "x"}}')
    project.source("a.md", "A", tags=["x"])
    project.source("b.md", "B", tags=["x"])

    output, _ = _resolve(project, separator=" + ")

    assert output == "A + B"


def test_empty_tag_renders_nothing_and_warns_once(project) -> None:
    project.write("entry.md", 'before{{tag "nothing"}}|{{tag "nothing"}}after')

    output, state = _resolve(project)

    assert output == "before|after"
    assert state.warnings == ['Tag "nothing" matched 0 files (in entry.md)']
    assert state.empty_tags == {"nothing"}


def test_empty_tag_is_fatal_in_strict_mode(project) -> None:
    project.write("entry.md", '{{tag "nothing"}}')

    with pytest.raises(EmptyTagError) as exc_info:
        _resolve(project, strict_tags=True)

    assert exc_info.value.tag == "nothing"


def test_includes_are_resolved_recursively(project) -> None:
    project.write("entry.md", 'A {{file "x.md"}} B')
    project.write("x.md", 'X {{tag "y"}}')
    project.source("y.md", "Y", tags=["y"])

    output, state = _resolve(project)

    assert output == "A X Y B"
    assert state.visited_files == {"entry.md", "x.md", "y.md"}
    assert state.active_stack == []


def test_mutual_inclusion_reports_the_full_chain(project) -> None:
    project.write("a.md", '{{file "b.md"}}')
    project.write("b.md", '{{file "a.md"}}')

    with pytest.raises(CircularReferenceError) as exc_info:
        _resolve(project, "a.md")

    assert exc_info.value.chain == ["a.md", "b.md", "a.md"]
    assert "a.md → b.md → a.md" in str(exc_info.value)


def test_file_including_its_own_path_is_a_cycle(project) -> None:
    project.write("a.md", 'Self: {{file "a.md"}}')

    with pytest.raises(CircularReferenceError) as exc_info:
        _resolve(project, "a.md")

    assert exc_info.value.chain == ["a.md", "a.md"]


def test_file_tagged_with_its_own_tag_is_a_cycle(project) -> None:
    project.source("a.md", 'Self: {{tag "self"}}', tags=["self"])

    with pytest.raises(CircularReferenceError) as exc_info:
        _resolve(project, "a.md")

    assert exc_info.value.chain == ["a.md", "a.md"]


def test_same_file_may_be_included_repeatedly(project) -> None:
    project.write("entry.md", '{{file "shared.md"}}+{{file "shared.md"}}')
    project.write("shared.md", "S")

    output, _ = _resolve(project)

    assert output == "S+S"


def test_missing_file_is_also_a_file_not_found_error(project) -> None:
    project.write("entry.md", '{{file "missing.md"}}')

    with pytest.raises(SourceNotFoundError) as exc_info:
        _resolve(project)

    assert isinstance(exc_info.value, FileNotFoundError)
    assert exc_info.value.path == "missing.md"
    assert "included from entry.md" in str(exc_info.value)


def test_unindexed_file_is_read_from_disk_with_its_own_metadata(project) -> None:
    project.write("src/entry.md", 'Main: {{file "shared/extra.md"}}')
    project.source("shared/extra.md", '{{meta "title"}} body', title="Extra")

    output, state = _resolve(project, "src/entry.md", patterns=("src/*.md",))

    assert output == "Main: Extra body"
    assert "shared/extra.md" in state.visited_files


def test_disk_fallback_cannot_leave_the_root(tmp_path: Path) -> None:
    project = ProjectBuilder(tmp_path / "project")
    project.write("entry.md", '{{file "../secret.md"}}')
    (tmp_path / "secret.md").write_text("secret", encoding="utf-8")

    with pytest.raises(PathOutsideRootError):
        _resolve(project)

    output, _ = _resolve(project, allow_outside_root=True)
    assert output == "secret"


def test_include_chain_longer_than_max_depth_fails(project) -> None:
    project.write("a.md", '{{file "b.md"}}')
    project.write("b.md", '{{file "c.md"}}')
    project.write("c.md", "leaf")

    with pytest.raises(MaxDepthExceededError) as exc_info:
        _resolve(project, "a.md", max_depth=2)

    assert exc_info.value.chain == ["a.md", "b.md", "c.md"]
    assert exc_info.value.max_depth == 2

    output, _ = _resolve(project, "a.md", max_depth=3)
    assert output == "leaf"


def test_chain_deeper_than_the_interpreter_stack_fails_cleanly(project) -> None:
    for i in range(300):
        project.write(f"f{i}.md", f'{{{{file "f{i + 1}.md"}}}}')
    project.write("f300.md", "leaf")
    index = build_source_index(project.root, ["*.md"])
    state = ResolutionState()

    with pytest.raises(MaxDepthExceededError) as exc_info:
        resolve_file("f0.md", index, state, max_depth=None)

    chain = exc_info.value.chain
    assert chain[:3] == ["f0.md", "f1.md", "f2.md"]
    assert chain == [f"f{i}.md" for i in range(len(chain))]
    assert exc_info.value.max_depth is None
    assert "stack limit" in str(exc_info.value)
    assert state.active_stack == []


def test_tagged_iteration_exposes_title_index_and_body(project) -> None:
    project.write(
        "entry.md",
        '{{#each (tagged "skill")}}\n'
        "## {{title}} ({{@index}})\n"
        "{{body}}\n"
        "{{/each}}\n",
    )
    project.source("skills/first.md", "one", tags=["skill"], order=1, title="First")
    project.source("skills/second.md", "two", tags=["skill"], order=2, description="Second desc")
    project.source("skills/third.md", "three", tags=["skill"])

    output, _ = _resolve(project, patterns=("*.md", "skills/*.md"))

    assert output == "## First (0)\none\n## Second desc (1)\ntwo\n## third (2)\nthree\n"


def test_tagged_items_offer_raw_and_resolved_bodies(project) -> None:
    project.write(
        "entry.md",
        '{{#each (tagged "t")}}[{{raw}}] [{{body}}] {{path}} {{frontmatter.level}} {{instrux.order}}{{/each}}',
    )
    project.source("item.md", '{{meta "level"}}', tags=["t"], order=3, level="senior")

    output, _ = _resolve(project)

    assert output == '[{{meta "level"}}] [senior] item.md senior 3'


def test_meta_helper_reads_the_current_files_frontmatter(project) -> None:
    project.source(
        "entry.md",
        '{{meta "audience"}} {{meta "nested.level"}} {{meta.audience}} [{{meta "missing"}}]',
        audience="devs",
        nested={"level": 2},
    )

    output, state = _resolve(project)

    assert output == "devs 2 devs []"
    assert state.warnings == []


def test_meta_is_scoped_to_each_file(project) -> None:
    project.source("entry.md", '{{meta "name"}}/{{file "child.md"}}', name="parent")
    project.source("child.md", '{{meta "name"}}', name="child")

    output, _ = _resolve(project)

    assert output == "parent/child"


def test_agent_identity_is_available_everywhere(project) -> None:
    project.write("entry.md", '{{agent.name}}: {{file "child.md"}}')
    project.write("child.md", "[{{agent.name}}|{{agent.description}}]")

    output, _ = _resolve(project, agent={"name": "coder"})

    assert output == "coder: [coder|]"


def test_included_text_is_not_scanned_again(project) -> None:
    project.write("entry.md", 'Doc: {{file "literal.md"}}')
    project.write("literal.md", 'Write \\{{file "entry.md"}} to include a file.')

    output, _ = _resolve(project)

    assert output == 'Doc: Write {{file "entry.md"}} to include a file.'


def test_tagged_helper_outside_each_is_rejected(project) -> None:
    project.write("entry.md", 'x\n{{tagged "t"}}')

    with pytest.raises(TemplateSyntaxError) as exc_info:
        _resolve(project)

    assert exc_info.value.line == 2
    assert exc_info.value.path == "entry.md"
