from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from schemas.session_ir import ProjectContext
from skills import git_tools

# package.json dependency name -> tech tag
_NPM_TAGS: Dict[str, str] = {
    "react": "react",
    "typescript": "typescript",
    "jest": "jest",
    "next": "nextjs",
    "vue": "vue",
    "vite": "vite",
    "tailwindcss": "tailwind",
    "@angular/core": "angular",
    "svelte": "svelte",
}

# marker file -> tech tag
_FILE_TAGS: Dict[str, str] = {
    "tsconfig.json": "typescript",
    "pyproject.toml": "python",
    "requirements.txt": "python",
    "setup.py": "python",
    "go.mod": "go",
    "Cargo.toml": "rust",
}


def _package_json_deps(path: Path) -> List[str]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return []
    if not isinstance(data, dict):
        return []
    names: List[str] = []
    for section in ("dependencies", "devDependencies", "peerDependencies"):
        deps = data.get(section)
        if isinstance(deps, dict):
            names.extend(str(name) for name in deps)
    return names


def detect_tech_stack(repo_root: Path) -> List[str]:
    tags = set()
    package_json = repo_root / "package.json"
    if package_json.exists():
        tags.add("javascript")
        for name in _package_json_deps(package_json):
            tag = _NPM_TAGS.get(name)
            if tag:
                tags.add(tag)
    for marker, tag in _FILE_TAGS.items():
        if (repo_root / marker).exists():
            tags.add(tag)
    return sorted(tags)


def build_project_context(repo_root: Path, now: Optional[datetime] = None) -> ProjectContext:
    now = now or datetime.now(timezone.utc)
    return ProjectContext(
        branch=git_tools.current_branch(repo_root),
        tech_stack=detect_tech_stack(repo_root),
        files_changed=git_tools.recent_files(repo_root),
        timestamp=now.isoformat(),
    )
