from __future__ import annotations

import re
import shutil
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from schemas.session_ir import SessionRecord
from skills.aggregator import SUCCESS_THRESHOLD

SECTION_HEADING = "## AI Performance Guidelines"
GUIDELINES_FILE = "CLAUDE.md"
MIN_SATISFACTION = 4.0

_TOP_LEVEL_HEADING_RE = re.compile(r"^## ")

_CONTEXT_ADVICE = {
    "react": "- **React Projects**: Include component analysis and state management considerations",
    "typescript": "- **TypeScript Projects**: Emphasize type safety and interface definitions",
    "jest": "- **Jest Testing**: Always include test coverage and assertion strategies",
    "nextjs": "- **Next.js Projects**: Consider SSR/SSG implications and routing",
}

_STATIC_TAIL = """#### Recommended Prompt Structure
Based on successful patterns:
1. **Start with clear context**: Include issue ID, type, and current branch
2. **Be specific about deliverables**: List exactly what files/changes are needed
3. **Include project context**: Mention tech stack and existing patterns
4. **Request step-by-step approach**: Ask for implementation plan
5. **Specify testing requirements**: Include test coverage expectations

#### Performance Optimization Tips
- Break complex tasks into smaller, focused requests
- Include relevant code snippets for context
- Specify coding standards and conventions upfront
- Request documentation alongside implementation
- Ask for error handling and edge case considerations

*Note: These guidelines are automatically updated based on session performance data.*
"""


def is_exemplary(record: SessionRecord) -> bool:
    quality = record.response_quality
    return (
        quality.success_rate is not None
        and quality.success_rate > SUCCESS_THRESHOLD
        and quality.user_satisfaction is not None
        and quality.user_satisfaction >= MIN_SATISFACTION
    )


def _top(counter: Counter, limit: int) -> List[tuple]:
    # most_common keeps insertion order on ties; sort by name first for stable output
    ordered = Counter(dict(sorted(counter.items())))
    return ordered.most_common(limit)


def generate_section(records: Sequence[SessionRecord], now: Optional[datetime] = None) -> str:
    """Markdown section built from exemplary sessions; empty string when there are no sessions."""
    if not records:
        return ""
    now = now or datetime.now()
    issue_types: Counter = Counter()
    templates: Counter = Counter()
    contexts: Counter = Counter()
    for record in records:
        if not is_exemplary(record):
            continue
        issue_types[record.issue_type] += 1
        templates[record.prompt.template_used] += 1
        contexts.update(record.project_context.tech_stack)

    lines = [
        f"{SECTION_HEADING} (Auto-Generated)",
        "",
        f"### Generated from {len(records)} session(s) on {now.strftime('%Y-%m-%d')}",
        "",
        "#### Most Successful Patterns",
    ]
    lines.extend(
        f"- **{name}** issues: {count} successful sessions" for name, count in _top(issue_types, 3)
    )
    lines.extend(["", "#### Effective Templates"])
    lines.extend(
        f"- **{name}**: {count} successful uses" for name, count in _top(templates, 2)
    )
    lines.extend(["", "#### Context-Specific Guidelines"])
    for name, count in _top(contexts, 3):
        lines.append(_CONTEXT_ADVICE.get(name, f"- **{name}**: {count} successful sessions"))
    lines.append("")
    return "\n".join(lines) + "\n" + _STATIC_TAIL


def find_guidelines_file(cwd: Path) -> Optional[Path]:
    for candidate in (
        cwd / "workflow" / GUIDELINES_FILE,
        cwd / GUIDELINES_FILE,
        cwd.parent / GUIDELINES_FILE,
    ):
        if candidate.is_file():
            return candidate
    return None


def has_section(text: str) -> bool:
    return any(line.startswith(SECTION_HEADING) for line in text.splitlines())


def apply_section(text: str, section: str) -> str:
    """Replace the existing guidelines section (up to the next ``## `` heading) or append it."""
    if not has_section(text):
        separator = "" if not text or text.endswith("\n\n") else ("\n" if text.endswith("\n") else "\n\n")
        return text + separator + section
    out: List[str] = []
    in_section = False
    for line in text.splitlines(keepends=True):
        if line.startswith(SECTION_HEADING):
            in_section = True
            out.append(section if section.endswith("\n") else section + "\n")
            continue
        if in_section and _TOP_LEVEL_HEADING_RE.match(line):
            in_section = False
            out.append("\n")
        if not in_section:
            out.append(line)
    return "".join(out)


def backup_file(path: Path, now: Optional[datetime] = None) -> Path:
    now = now or datetime.now()
    backup = path.with_name(f"{path.name}.backup.{now.strftime('%Y%m%d_%H%M%S')}")
    shutil.copy2(path, backup)
    return backup


def update_guidelines(path: Path, section: str) -> bool:
    """Write ``section`` into ``path``; returns True if an existing section was replaced."""
    text = path.read_text(encoding="utf-8")
    replaced = has_section(text)
    path.write_text(apply_section(text, section), encoding="utf-8")
    return replaced
