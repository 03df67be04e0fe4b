from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Sequence

from schemas.linear_ir import LinearIssue
from schemas.template_ir import TemplateLibrary, TemplateStats
from skills.project_context import detect_tech_stack
from skills.prompt_builder import (
    NO_DESCRIPTION,
    build_prompt,
    classify_issue,
    default_prompt,
    render_template,
)


def _issue(
    title: str = "Something",
    labels: Sequence[str] = (),
    description: Optional[str] = None,
) -> LinearIssue:
    return LinearIssue.model_validate(
        {
            "id": "uuid-1",
            "identifier": "ABC-12",
            "title": title,
            "description": description,
            "state": {"id": "s1", "name": "Todo"},
            "team": {"key": "ABC"},
            "labels": {"nodes": [{"name": name} for name in labels]},
        }
    )


def test_labels_win_over_title() -> None:
    assert classify_issue(_issue("Add login page", ["Bug"])) == "bug"
    assert classify_issue(_issue("Fix crash", ["Feature"])) == "feature"
    assert classify_issue(_issue("Anything", ["Improvement"])) == "enhancement"


def test_title_keywords_when_labels_do_not_match() -> None:
    assert classify_issue(_issue("Fix login redirect", ["frontend"])) == "bug"
    assert classify_issue(_issue("Implement export")) == "feature"
    assert classify_issue(_issue("Update copy on landing page")) == "enhancement"
    assert classify_issue(_issue("Write quarterly notes")) == "task"


def test_default_prompt_contains_issue_details() -> None:
    prompt = default_prompt(_issue("Fix login redirect"), "bugfix/ABC-12")
    assert "- ID: ABC-12" in prompt
    assert "- Title: Fix login redirect" in prompt
    assert f"- Description: {NO_DESCRIPTION}" in prompt
    assert "- State: Todo" in prompt
    assert "- Team: ABC" in prompt
    assert "- Current Branch: bugfix/ABC-12" in prompt


def test_render_template_is_literal() -> None:
    text = "Fix {{title}} on {{ current_branch }} ({{unknown}})"
    rendered = render_template(text, {"title": "a/b & c\\1", "current_branch": "main"})
    assert rendered == "Fix a/b & c\\1 on main ({{unknown}})"


def test_build_prompt_uses_library_template() -> None:
    library = TemplateLibrary(
        templates={
            "bug_fix_v1": TemplateStats(
                template="Bug {{issue_id}}: {{title}}\nStack:\n{{tech_stack_list}}\nFiles:\n{{recent_files}}"
            )
        }
    )
    prompt = build_prompt(
        _issue("Broken"), "bug_fix_v1", "main", ["react", "typescript"], [], library
    )
    assert prompt == "Bug ABC-12: Broken\nStack:\n- react\n- typescript\nFiles:\nNo recent changes"


def test_build_prompt_falls_back_to_default() -> None:
    issue = _issue("Broken", description="details")
    assert build_prompt(issue, "missing", "main", [], [], TemplateLibrary()) == default_prompt(
        issue, "main"
    )
    assert build_prompt(issue, "linear_task_v1", "main", [], [], None) == default_prompt(issue, "main")


def test_detect_tech_stack(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(
        json.dumps({"dependencies": {"react": "^18"}, "devDependencies": {"jest": "^29"}}),
        encoding="utf-8",
    )
    (tmp_path / "tsconfig.json").write_text("{}", encoding="utf-8")
    assert detect_tech_stack(tmp_path) == ["javascript", "jest", "react", "typescript"]


def test_detect_tech_stack_empty_directory(tmp_path: Path) -> None:
    assert detect_tech_stack(tmp_path) == []
