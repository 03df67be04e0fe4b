from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

from schemas.commit_metrics_ir import CommitMetrics
from schemas.linear_ir import LinearIssue

DATE_FORMAT = "%d/%m/%Y %I:%M %p"

_TESTING_CHECKLIST = (
    "## Testing\n"
    "- [ ] Code builds successfully\n"
    "- [ ] Tests pass\n"
    "- [ ] Feature works as expected\n"
)


def format_date(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(DATE_FORMAT)


def build_pr_content(
    branch: str,
    issue: Optional[LinearIssue] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Tuple[str, str]:
    """Return (title, body); explicit values win over issue details, branch name is the last resort."""
    pr_title = title or (issue.title if issue is not None and issue.title else "") or branch
    if description:
        return pr_title, description
    if issue is not None:
        body = "## Overview\n"
        if issue.title:
            body += f"**Linear Issue:** [{issue.identifier}] {issue.title}\n\n"
        if issue.description:
            body += f"**Description:**\n{issue.description}\n\n"
        body += "## Changes\n"
        body += f"- Implementation completed in branch: `{branch}`\n"
        body += "- Please review the commits for detailed changes\n\n"
        return pr_title, body + _TESTING_CHECKLIST
    body = (
        "## Overview\n"
        f"Pull request for branch: `{branch}`\n\n"
        "## Changes\n"
        "- Please review the commits for detailed changes\n\n"
    )
    return pr_title, body + _TESTING_CHECKLIST


def branch_comment(branch: str, branch_url: str, created: str) -> str:
    return (
        f"🌿 **Branch created:** [{branch}]({branch_url}) - {created}\n\n"
        "This branch is ready for development. You can start working on this issue!"
    )


def branch_attachment_title(branch: str) -> str:
    return f"GitHub Branch: '{branch}'"


def pr_attachment_title(number: int, title: str) -> str:
    return f"GitHub PR #{number}: '{title}'"


def created_subtitle(created: str) -> str:
    return f"Created '{created}'"


def metrics_comment(
    metrics: CommitMetrics,
    branch: str,
    created: str,
    pr_url: Optional[str] = None,
) -> str:
    lines = [f"✅ **Task Completed** - {created}", ""]
    if pr_url:
        lines.extend([f"**PR Info:** [View PR]({pr_url})", ""])
    lines.extend(
        [
            f"🤖 **AI/Dev Split:** {metrics.ai_percentage}% AI, {metrics.dev_percentage}% Dev",
            f"📊 **Commits:** {metrics.total_commits} total "
            f"({metrics.ai_commits} AI, {metrics.dev_commits} Dev)",
            f"📝 **Changes:** +{metrics.lines_added}/-{metrics.lines_removed} lines, "
            f"{metrics.files_changed} files",
            f"⏱️ **Duration:** {metrics.branch_age}",
            f"🔀 **Branch:** {branch}",
        ]
    )
    return "\n".join(lines)
