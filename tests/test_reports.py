from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from schemas.commit_metrics_ir import CommitMetrics
from schemas.linear_ir import LinearIssue
from schemas.session_ir import (
    ProjectContext,
    PromptInfo,
    ResponseQuality,
    SessionOutcome,
    SessionRecord,
)
from skills import guidelines
from skills.pattern_report import build_pattern_report, export_insights
from skills.report import (
    branch_attachment_title,
    build_pr_content,
    format_date,
    metrics_comment,
    pr_attachment_title,
)

NOW = datetime(2024, 3, 5, 14, 7, 0)


def _record(
    session_id: str,
    issue_type: str = "bug",
    template: str = "linear_task_v1",
    success: Optional[float] = None,
    satisfaction: Optional[float] = None,
    completed: Optional[bool] = None,
    tech: Optional[List[str]] = None,
) -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        issue_id="ABC-1",
        issue_type=issue_type,
        project_context=ProjectContext(tech_stack=tech or []),
        prompt=PromptInfo(original="p", template_used=template),
        response_quality=ResponseQuality(success_rate=success, user_satisfaction=satisfaction),
        outcome=SessionOutcome(task_completed=completed),
    )


def test_format_date() -> None:
    assert format_date(NOW) == "05/03/2024 02:07 PM"


def test_pr_content_from_issue() -> None:
    issue = LinearIssue(id="u", identifier="ABC-9", title="Fix login", description="Steps here")
    title, body = build_pr_content("bugfix/ABC-9", issue)
    assert title == "Fix login"
    assert "**Linear Issue:** [ABC-9] Fix login" in body
    assert "**Description:**\nSteps here" in body
    assert "`bugfix/ABC-9`" in body
    assert "## Testing" in body


def test_pr_content_without_issue_and_explicit_values() -> None:
    title, body = build_pr_content("feature/x")
    assert title == "feature/x"
    assert "Pull request for branch: `feature/x`" in body
    assert build_pr_content("feature/x", title="T", description="D") == ("T", "D")


def test_attachment_titles() -> None:
    assert branch_attachment_title("feature/ABC-1") == "GitHub Branch: 'feature/ABC-1'"
    assert pr_attachment_title(12, "Fix") == "GitHub PR #12: 'Fix'"


def test_metrics_comment() -> None:
    metrics = CommitMetrics(
        total_commits=4,
        ai_commits=2,
        dev_commits=1,
        other_commits=1,
        ai_percentage=50,
        dev_percentage=25,
        lines_added=10,
        lines_removed=3,
        files_changed=2,
        branch_age="1h 5m",
    )
    text = metrics_comment(metrics, "feature/ABC-1", "05/03/2024 02:07 PM", "https://pr/1")
    lines = text.splitlines()
    assert lines[0] == "✅ **Task Completed** - 05/03/2024 02:07 PM"
    assert "**PR Info:** [View PR](https://pr/1)" in text
    assert "50% AI, 25% Dev" in text
    assert "+10/-3 lines, 2 files" in text
    assert lines[-1].endswith("feature/ABC-1")
    assert "PR Info" not in metrics_comment(metrics, "b", "now")


def test_pattern_report_warnings() -> None:
    records = [
        _record("a", success=0.9, satisfaction=5.0, completed=True, tech=["react"]),
        _record("b", success=0.2, satisfaction=2.0, completed=False),
        _record("c", issue_type="feature", success=0.8),
    ]
    report = build_pattern_report(records)
    assert report.total_sessions == 3
    assert report.low_satisfaction_sessions == 2
    assert report.incomplete_sessions == 2
    assert len(report.warnings) == 2
    assert list(report.by_issue_type) == ["bug", "feature"]
    assert report.by_tech["react"].total_sessions == 1
    assert "typescript" not in report.by_tech


def test_pattern_report_exclude_policy_skips_unrated() -> None:
    records = [
        _record("a", success=0.9, satisfaction=5.0, completed=True),
        _record("b", success=0.9, completed=True),
    ]
    report = build_pattern_report(records, unset_policy="exclude")
    assert report.rated_sessions == 1
    assert report.low_satisfaction_sessions == 0
    assert report.warnings == []


def test_export_insights(tmp_path: Path) -> None:
    report = build_pattern_report([_record("a", success=0.9, satisfaction=4.0, completed=True)])
    path = export_insights(report, tmp_path / "out" / "insights.md", NOW)
    text = path.read_text(encoding="utf-8")
    assert text.startswith("# Pattern Analysis Insights")
    assert "| bug | 1 | 1 | 100.0 | 4.0 |" in text


def test_guidelines_section_from_exemplary_sessions() -> None:
    records = [
        _record("a", success=0.9, satisfaction=5.0, tech=["react", "jest"]),
        _record("b", issue_type="feature", template="react_specific", success=0.8, satisfaction=4.0, tech=["react"]),
        _record("c", success=0.9, satisfaction=3.0, tech=["vue"]),
        _record("d", success=0.7, satisfaction=5.0),
    ]
    section = guidelines.generate_section(records, NOW)
    assert section.startswith("## AI Performance Guidelines (Auto-Generated)")
    assert "### Generated from 4 session(s) on 2024-03-05" in section
    assert "- **bug** issues: 1 successful sessions" in section
    assert "- **feature** issues: 1 successful sessions" in section
    assert "**React Projects**" in section
    assert "**Jest Testing**" in section
    assert "vue" not in section
    assert guidelines.generate_section([], NOW) == ""


def test_apply_section_replaces_up_to_next_heading() -> None:
    text = (
        "# Project\n\n"
        "## AI Performance Guidelines (Auto-Generated)\nold line\n\n"
        "## Other\nkeep me\n"
    )
    updated = guidelines.apply_section(text, "## AI Performance Guidelines (Auto-Generated)\nnew\n")
    assert "old line" not in updated
    assert "new\n" in updated
    assert updated.count("## AI Performance Guidelines") == 1
    assert updated.endswith("## Other\nkeep me\n")


def test_apply_section_appends_when_missing() -> None:
    assert guidelines.apply_section("# Project\n", "## AI Performance Guidelines\n") == (
        "# Project\n\n## AI Performance Guidelines\n"
    )


def test_find_backup_and_update(tmp_path: Path) -> None:
    assert guidelines.find_guidelines_file(tmp_path) is None
    path = tmp_path / "CLAUDE.md"
    path.write_text("# Project\n", encoding="utf-8")
    assert guidelines.find_guidelines_file(tmp_path) == path

    backup = guidelines.backup_file(path, NOW)
    assert backup.name == "CLAUDE.md.backup.20240305_140700"
    assert backup.read_text(encoding="utf-8") == "# Project\n"

    assert guidelines.update_guidelines(path, "## AI Performance Guidelines\nv1\n") is False
    assert guidelines.update_guidelines(path, "## AI Performance Guidelines\nv2\n") is True
    assert "v1" not in path.read_text(encoding="utf-8")
