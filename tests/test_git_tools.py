from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List

import pytest

from schemas.commit_metrics_ir import CommitMetrics
from schemas.linear_ir import LinearIssue
from skills import git_tools
from workflow.errors import ExternalCallError


def _issue(labels: List[str], identifier: str = "ABC-7") -> LinearIssue:
    return LinearIssue.model_validate(
        {
            "id": "uuid",
            "identifier": identifier,
            "title": "t",
            "labels": {"nodes": [{"name": name} for name in labels]},
        }
    )


@pytest.mark.parametrize(
    "branch, expected",
    [
        ("feature/ABC-123", "ABC-123"),
        ("bugfix/COD-294-login", "COD-294"),
        ("main", None),
        ("feature/abc-123", None),
    ],
)
def test_extract_issue_id(branch: str, expected: object) -> None:
    assert git_tools.extract_issue_id(branch) == expected


@pytest.mark.parametrize(
    "labels, expected",
    [
        (["bug"], "bugfix/ABC-7"),
        (["hotfix"], "hotfix/ABC-7"),
        (["chore", "bug"], "bugfix/ABC-7"),
        (["chore"], "chore/ABC-7"),
        (["design"], "feature/ABC-7"),
        ([], "feature/ABC-7"),
    ],
)
def test_generate_branch_name(labels: List[str], expected: str) -> None:
    assert git_tools.generate_branch_name(_issue(labels)) == expected


def test_parse_diff_stat_summary_line() -> None:
    stat = (
        " src/a.py | 10 +++++-----\n"
        " src/b.py |  3 +++\n"
        " 2 files changed, 8 insertions(+), 5 deletions(-)\n"
    )
    assert git_tools.parse_diff_stat(stat) == (2, 8, 5)


def test_parse_diff_stat_partial_and_empty() -> None:
    assert git_tools.parse_diff_stat(" 1 file changed, 1 insertion(+)") == (1, 1, 0)
    assert git_tools.parse_diff_stat(" 1 file changed, 2 deletions(-)") == (1, 0, 2)
    assert git_tools.parse_diff_stat("") == (0, 0, 0)


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (59, "0m"),
        (45 * 60, "45m"),
        (3 * 3600 + 5 * 60, "3h 5m"),
        (2 * 86400 + 4 * 3600, "2d 4h"),
        (30 * 86400, "30d 0h"),
        (65 * 86400, "2mo 5d"),
    ],
)
def test_format_duration(seconds: int, expected: str) -> None:
    assert git_tools.format_duration(seconds) == expected


def test_compute_commit_metrics_counts_tags() -> None:
    log = [
        "a1b2c3 [AI] add parser",
        "d4e5f6 [DEV] fix tests",
        "0718aa [AI] refactor",
        "99ffee bump version",
    ]
    metrics = git_tools.compute_commit_metrics(
        log,
        " 3 files changed, 40 insertions(+), 2 deletions(-)",
        first_commit_ts=1_000_000,
        now=1_000_000 + 2 * 3600 + 30 * 60,
    )
    assert metrics.total_commits == 4
    assert metrics.ai_commits == 2
    assert metrics.dev_commits == 1
    assert metrics.other_commits == 1
    assert metrics.ai_percentage == 50
    assert metrics.dev_percentage == 25
    assert (metrics.files_changed, metrics.lines_added, metrics.lines_removed) == (3, 40, 2)
    assert metrics.branch_age == "2h 30m"


def test_compute_commit_metrics_integer_percentages() -> None:
    metrics = git_tools.compute_commit_metrics(["a [AI]", "b", "c"])
    assert metrics.ai_percentage == 33
    assert metrics.branch_age == "unknown"


def test_compute_commit_metrics_without_commits() -> None:
    assert git_tools.compute_commit_metrics(["", "  "]) == CommitMetrics()


def test_current_branch_outside_repository(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _fail(*args, **kwargs):
        raise subprocess.CalledProcessError(128, args[0], stderr="not a git repository")

    monkeypatch.setattr(git_tools.subprocess, "run", _fail)
    assert git_tools.current_branch(tmp_path) == "unknown"
    assert git_tools.recent_files(tmp_path) == []
    assert git_tools.is_repository(tmp_path) is False


def test_push_failure_carries_stderr(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _fail(*args, **kwargs):
        raise subprocess.CalledProcessError(1, args[0], stderr="rejected\n")

    monkeypatch.setattr(git_tools.subprocess, "run", _fail)
    with pytest.raises(ExternalCallError) as info:
        git_tools.push_branch("feature/ABC-1", tmp_path)
    assert info.value.raw == "rejected"


def test_recent_files_limits_output(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls = []

    def _run(args, **kwargs):
        calls.append(args)
        return subprocess.CompletedProcess(args, 0, stdout="a\nb\nc\nd\ne\nf\n", stderr="")

    monkeypatch.setattr(git_tools.subprocess, "run", _run)
    assert git_tools.recent_files(tmp_path, limit=5) == ["a", "b", "c", "d", "e"]
    assert calls[0][:2] == ["git", "diff"]
