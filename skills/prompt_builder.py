from __future__ import annotations

import re
from typing import Dict, Iterable, Optional

from schemas.linear_ir import LinearIssue
from schemas.template_ir import TemplateLibrary

NO_DESCRIPTION = "No description provided"

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")

# (issue type, label pattern, title pattern); labels are checked before titles.
_LABEL_RULES = (
    ("bug", re.compile(r"bug|fix|error", re.IGNORECASE)),
    ("feature", re.compile(r"feature|new", re.IGNORECASE)),
    ("enhancement", re.compile(r"enhancement|improve", re.IGNORECASE)),
)
_TITLE_RULES = (
    ("bug", re.compile(r"fix|bug|error")),
    ("feature", re.compile(r"add|implement|create")),
    ("enhancement", re.compile(r"update|improve|enhance")),
)


def classify_issue(issue: LinearIssue) -> str:
    for issue_type, pattern in _LABEL_RULES:
        if any(pattern.search(name) for name in issue.label_names):
            return issue_type
    title = issue.title.lower()
    for issue_type, pattern in _TITLE_RULES:
        if pattern.search(title):
            return issue_type
    return "task"


def default_prompt(issue: LinearIssue, branch: str) -> str:
    state = issue.state.name if issue.state is not None else ""
    team = issue.team.key if issue.team is not None else ""
    return (
        "I'm working on a Linear issue and need your help to implement it.\n"
        "\n"
        "**Issue Details:**\n"
        f"- ID: {issue.identifier}\n"
        f"- Title: {issue.title}\n"
        f"- Description: {issue.description or NO_DESCRIPTION}\n"
        f"- State: {state}\n"
        f"- Team: {team}\n"
        f"- Current Branch: {branch}\n"
        "\n"
        "**Request:**\n"
        "Please help me implement this task. Analyze the requirements and provide guidance on:\n"
        "1. What files need to be created or modified\n"
        "2. The implementation approach\n"
        "3. Any dependencies or considerations\n"
        "4. Step-by-step implementation plan\n"
        "\n"
        "Please start by understanding the codebase structure and then provide your recommendations.\n"
    )


def render_template(text: str, variables: Dict[str, str]) -> str:
    """Replace ``{{name}}`` placeholders literally; unknown names are left as-is."""

    def _sub(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in variables:
            return variables[name]
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_sub, text)


def _bullet_list(items: Iterable[str], empty: str) -> str:
    lines = [f"- {item}" for item in items if item]
    return "\n".join(lines) if lines else empty


def template_variables(
    issue: LinearIssue,
    branch: str,
    tech_stack: Iterable[str],
    recent_files: Iterable[str],
) -> Dict[str, str]:
    tags = list(tech_stack)
    return {
        "issue_id": issue.identifier,
        "title": issue.title,
        "description": issue.description or NO_DESCRIPTION,
        "current_branch": branch,
        "tech_stack": ",".join(tags),
        "tech_stack_list": _bullet_list(tags, "- (unknown)"),
        "recent_files": _bullet_list(recent_files, "No recent changes"),
    }


def build_prompt(
    issue: LinearIssue,
    template_name: str,
    branch: str,
    tech_stack: Iterable[str],
    recent_files: Iterable[str],
    library: Optional[TemplateLibrary] = None,
    template_text: Optional[str] = None,
) -> str:
    """Render ``template_text`` or the library template, falling back to the default prompt."""
    text = template_text
    if text is None and library is not None:
        stats = library.stats_for(template_name)
        if stats is not None and stats.template:
            text = stats.template
    if not text:
        return default_prompt(issue, branch)
    return render_template(text, template_variables(issue, branch, tech_stack, recent_files))
