from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional, Tuple

from schemas.session_ir import PromptInfo, ResponseQuality, SessionRecord
from schemas.template_ir import AdaptationRules, TemplateLibrary, TemplateStats
from skills.template_selector import (
    DEFAULT_TEMPLATE,
    SelectionThresholds,
    load_library,
    refresh_library_stats,
    save_library,
    select_template,
)


def _library(
    stats: Dict[str, Tuple[float, int]],
    mapping: Optional[Dict[str, str]] = None,
) -> TemplateLibrary:
    return TemplateLibrary(
        templates={
            name: TemplateStats(template=f"{name} body", success_rate=rate, usage_count=usage)
            for name, (rate, usage) in stats.items()
        },
        adaptation_rules=AdaptationRules(issue_type_mapping=mapping or {}),
    )


def test_react_template_selected_when_it_qualifies() -> None:
    library = _library({"react_specific": (0.75, 5)})
    assert select_template("feature", ["react"], library) == "react_specific"


def test_react_needs_enough_usage() -> None:
    library = _library({"react_specific": (0.9, 2)})
    assert select_template("feature", ["react"], library) == DEFAULT_TEMPLATE


def test_react_takes_priority_over_typescript() -> None:
    library = _library({"react_specific": (0.8, 3), "typescript_specific": (0.95, 10)})
    assert select_template("bug", ["typescript", "react"], library) == "react_specific"


def test_typescript_used_when_react_does_not_qualify() -> None:
    library = _library({"react_specific": (0.7, 10), "typescript_specific": (0.71, 3)})
    assert select_template("bug", ["react", "typescript"], library) == "typescript_specific"


def test_issue_type_mapping_thresholds() -> None:
    mapping = {"bug": "bug_fix_v1"}
    assert select_template("bug", [], _library({"bug_fix_v1": (0.61, 2)}, mapping)) == "bug_fix_v1"
    assert select_template("bug", [], _library({"bug_fix_v1": (0.6, 5)}, mapping)) == DEFAULT_TEMPLATE
    assert select_template("bug", [], _library({"bug_fix_v1": (0.9, 1)}, mapping)) == DEFAULT_TEMPLATE


def test_mapping_to_unknown_template_falls_back() -> None:
    library = _library({}, {"bug": "missing"})
    assert select_template("bug", [], library) == DEFAULT_TEMPLATE


def test_missing_library_uses_default() -> None:
    assert select_template("bug", ["react"], None) == DEFAULT_TEMPLATE
    thresholds = SelectionThresholds(default_template="custom_default")
    assert select_template("bug", [], None, thresholds) == "custom_default"


def test_library_round_trip_and_missing_file(tmp_path: Path) -> None:
    path = tmp_path / "templates" / "adaptive_prompts.json"
    assert load_library(path) is None
    save_library(_library({"bug_fix_v1": (0.5, 2)}, {"bug": "bug_fix_v1"}), path)
    loaded = load_library(path)
    assert loaded.stats_for("bug_fix_v1").usage_count == 2
    assert loaded.adaptation_rules.issue_type_mapping == {"bug": "bug_fix_v1"}


def test_load_library_accepts_extra_keys(tmp_path: Path) -> None:
    path = tmp_path / "adaptive_prompts.json"
    path.write_text(
        '{"version": 2, "templates": {"t": {"template": "x", "success_rate": 0.8, '
        '"usage_count": 4, "variables": ["title"]}}}',
        encoding="utf-8",
    )
    assert load_library(path).stats_for("t").success_rate == 0.8


def test_refresh_library_stats_from_sessions() -> None:
    def _session(session_id: str, template: str, rate: float) -> SessionRecord:
        return SessionRecord(
            session_id=session_id,
            issue_id="ABC-1",
            issue_type="bug",
            prompt=PromptInfo(original="p", template_used=template),
            response_quality=ResponseQuality(success_rate=rate),
        )

    library = _library({"bug_fix_v1": (0.0, 0), "unused": (0.9, 7)})
    records = [
        _session("a", "bug_fix_v1", 0.9),
        _session("b", "bug_fix_v1", 0.8),
        _session("c", "bug_fix_v1", 0.2),
        _session("d", "linear_task_v1", 0.9),
    ]
    refresh_library_stats(library, records)
    assert library.stats_for("bug_fix_v1").usage_count == 3
    assert abs(library.stats_for("bug_fix_v1").success_rate - 2 / 3) < 1e-9
    assert library.stats_for("unused").usage_count == 0
    assert "linear_task_v1" not in library.templates


def test_refresh_and_save_keep_hand_edited_keys(tmp_path: Path) -> None:
    path = tmp_path / "adaptive_prompts.json"
    path.write_text(
        json.dumps(
            {
                "version": 2,
                "templates": {
                    "t": {"template": "x", "success_rate": 0.8, "usage_count": 4, "variables": ["title"]}
                },
                "adaptation_rules": {"issue_type_mapping": {"bug": "t"}, "notes": "keep"},
            }
        ),
        encoding="utf-8",
    )
    library = load_library(path)
    save_library(refresh_library_stats(library, []), path)

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["version"] == 2
    assert saved["templates"]["t"]["variables"] == ["title"]
    assert saved["templates"]["t"]["usage_count"] == 0
    assert saved["adaptation_rules"]["notes"] == "keep"
