from __future__ import annotations

import re
import subprocess
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from schemas.commit_metrics_ir import CommitMetrics
from schemas.linear_ir import LinearIssue
from workflow.errors import ExternalCallError

ISSUE_ID_RE = re.compile(r"([A-Z]+-[0-9]+)")
_FILES_RE = re.compile(r"(\d+) files? changed")
_INSERT_RE = re.compile(r"(\d+) insertions?\(\+\)")
_DELETE_RE = re.compile(r"(\d+) deletions?\(-\)")

# label substring -> branch prefix, first match wins
_BRANCH_PREFIXES = (("bug", "bugfix"), ("hotfix", "hotfix"), ("chore", "chore"))


def _git(args: Sequence[str], cwd: Path, check: bool = True) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=check,
        capture_output=True,
        text=True,
    )
    return result.stdout


def _git_or_raise(args: Sequence[str], cwd: Path) -> str:
    try:
        return _git(args, cwd)
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise ExternalCallError("git", f"git {' '.join(args)} failed", stderr) from exc
    except FileNotFoundError as exc:
        raise ExternalCallError("git", "git executable not found") from exc


def extract_issue_id(branch: str) -> Optional[str]:
    match = ISSUE_ID_RE.search(branch or "")
    return match.group(1) if match else None


def generate_branch_name(issue: LinearIssue) -> str:
    labels = " ".join(issue.label_names)
    prefix = "feature"
    for needle, candidate in _BRANCH_PREFIXES:
        if needle in labels:
            prefix = candidate
            break
    return f"{prefix}/{issue.identifier or 'unknown'}"


def current_branch(cwd: Path) -> str:
    try:
        branch = _git(["branch", "--show-current"], cwd).strip()
    except (subprocess.CalledProcessError, FileNotFoundError):
        return "unknown"
    return branch or "unknown"


def recent_files(cwd: Path, limit: int = 5) -> List[str]:
    try:
        output = _git(["diff", "--name-only", "HEAD~1", "HEAD"], cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return []
    return [line.strip() for line in output.splitlines() if line.strip()][:limit]


def is_repository(cwd: Path) -> bool:
    try:
        _git(["rev-parse", "--git-dir"], cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
    return True


def push_branch(branch: str, cwd: Path, remote: str = "origin") -> None:
    _git_or_raise(["push", remote, branch], cwd)


def checkout_branch(branch: str, base_branch: str, cwd: Path, remote: str = "origin") -> bool:
    """Fetch, refresh the base branch and switch to ``branch``.

    Returns True when the local branch already existed.
    """
    if not is_repository(cwd):
        raise ExternalCallError("git", f"Not a git repository: {cwd}")
    _git_or_raise(["fetch", remote], cwd)
    _git_or_raise(["checkout", base_branch], cwd)
    _git_or_raise(["pull", remote, base_branch], cwd)
    exists = (
        subprocess.run(
            ["git", "show-ref", "--verify", "--quiet", f"refs/heads/{branch}"],
            cwd=str(cwd),
            check=False,
        ).returncode
        == 0
    )
    if exists:
        _git_or_raise(["checkout", branch], cwd)
    else:
        _git_or_raise(["checkout", "-b", branch, f"{remote}/{branch}"], cwd)
    return exists


def parse_diff_stat(stat: str) -> Tuple[int, int, int]:
    """Return (files_changed, lines_added, lines_removed) from ``git diff --stat`` output."""
    lines = [line for line in stat.strip().splitlines() if line.strip()]
    if not lines:
        return 0, 0, 0
    summary = lines[-1]
    if "insertion" not in summary and "deletion" not in summary:
        return 0, 0, 0

    def _num(pattern: "re.Pattern[str]") -> int:
        match = pattern.search(summary)
        return int(match.group(1)) if match else 0

    return _num(_FILES_RE), _num(_INSERT_RE), _num(_DELETE_RE)


def format_duration(seconds: int) -> str:
    minutes = max(0, seconds) // 60
    hours = minutes // 60
    days = hours // 24
    if minutes < 60:
        return f"{minutes}m"
    if hours < 24:
        return f"{hours}h {minutes % 60}m"
    if days <= 30:
        return f"{days}d {hours % 24}h"
    return f"{days // 30}mo {days % 30}d"


def compute_commit_metrics(
    log_lines: Sequence[str],
    diff_stat: str = "",
    first_commit_ts: Optional[int] = None,
    now: Optional[float] = None,
) -> CommitMetrics:
    commits = [line for line in log_lines if line.strip()]
    total = len(commits)
    if total == 0:
        return CommitMetrics()
    ai_commits = sum(1 for line in commits if "[AI]" in line)
    dev_commits = sum(1 for line in commits if "[DEV]" in line)
    files_changed, lines_added, lines_removed = parse_diff_stat(diff_stat)
    branch_age = "unknown"
    if first_commit_ts is not None:
        now_ts = int(now if now is not None else time.time())
        branch_age = format_duration(now_ts - first_commit_ts)
    return CommitMetrics(
        total_commits=total,
        ai_commits=ai_commits,
        dev_commits=dev_commits,
        other_commits=total - ai_commits - dev_commits,
        ai_percentage=ai_commits * 100 // total,
        dev_percentage=dev_commits * 100 // total,
        lines_added=lines_added,
        lines_removed=lines_removed,
        files_changed=files_changed,
        branch_age=branch_age,
    )


def collect_commit_metrics(base_branch: str, cwd: Path) -> CommitMetrics:
    branch = current_branch(cwd)
    if branch == "unknown":
        raise ExternalCallError("git", "Could not determine current branch")
    commit_range = f"{base_branch}..{branch}"
    try:
        log = _git(["log", "--oneline", commit_range], cwd)
    except subprocess.CalledProcessError:
        log = _git(["log", "--oneline", "-10"], cwd, check=False)
    log_lines = log.splitlines()
    if not [line for line in log_lines if line.strip()]:
        return CommitMetrics()
    stat = _git(["diff", "--stat", commit_range], cwd, check=False)
    if not stat.strip():
        stat = _git(["diff", "--stat", f"HEAD~{len(log_lines)}..HEAD"], cwd, check=False)
    first_ts: Optional[int] = None
    timestamps = _git(["log", "--format=%ct", commit_range], cwd, check=False).split()
    if timestamps and timestamps[-1].isdigit():
        first_ts = int(timestamps[-1])
    return compute_commit_metrics(log_lines, stat, first_ts)
