from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, TextIO

from schemas.ab_test_ir import ABTest
from schemas.bucket_ir import BucketKey, BucketStats
from schemas.commit_metrics_ir import CommitMetrics
from schemas.linear_ir import LinearIssue

_COLORS = {
    "INFO": "\033[0;34m",
    "SUCCESS": "\033[0;32m",
    "WARNING": "\033[1;33m",
    "ERROR": "\033[0;31m",
}
_RESET = "\033[0m"


def _pct(value: float) -> str:
    return f"{value:5.1f}%"


def _bucket_label(key: BucketKey) -> str:
    if isinstance(key, bool):
        return "with tag" if key else "without tag"
    return str(key)


@dataclass
class ConsoleUI:
    enabled: bool = True
    stream: TextIO = sys.stdout
    color: Optional[bool] = None
    _color_cache: Dict[str, bool] = field(default_factory=dict, repr=False)

    def header(self, title: str) -> None:
        if not self.enabled:
            return
        self._print(title)
        self._print("=" * max(len(title), 10))

    def status(self, message: str) -> None:
        self._tagged("INFO", message)

    def success(self, message: str) -> None:
        self._tagged("SUCCESS", message)

    def warning(self, message: str) -> None:
        self._tagged("WARNING", message)

    def error(self, message: str) -> None:
        self._tagged("ERROR", message)

    def line(self, text: str = "") -> None:
        self._print(text)

    def section(self, title: str) -> None:
        self._section(title)

    def kv(self, key: str, value: object) -> None:
        self._kv(key, str(value))

    def issue(self, issue: LinearIssue) -> None:
        if not self.enabled:
            return
        self._kv("Issue", f"{issue.identifier} {issue.title}")
        if issue.state is not None and issue.state.name:
            self._kv("State", issue.state.name)
        if issue.label_names:
            self._kv("Labels", ", ".join(issue.label_names))

    def bucket_table(
        self,
        title: str,
        buckets: Dict[BucketKey, BucketStats],
        width: int = 12,
        show_satisfaction: bool = True,
    ) -> None:
        if not self.enabled:
            return
        self._section(title)
        if not buckets:
            self._print("  (no sessions)")
            return
        for key, stats in buckets.items():
            row = (
                f"  {_bucket_label(key):<{width}}: {_pct(stats.success_pct)} success "
                f"({stats.successful_sessions}/{stats.total_sessions} sessions)"
            )
            if show_satisfaction:
                row += f" | Avg satisfaction: {stats.avg_satisfaction:.1f}/5"
            self._print(row)

    def ab_test_row(self, test: ABTest) -> None:
        created = test.created.split("T", 1)[0] if test.created else "-"
        self._print(
            f"  {test.test_name:<20} Status: {test.status:<8} Created: {created:<10} "
            f"Sessions: A={test.variants.A.metrics.total_sessions}, "
            f"B={test.variants.B.metrics.total_sessions}"
        )

    def ab_variants(self, test: ABTest) -> None:
        if not self.enabled:
            return
        self._section("Variant Performance")
        for label in ("A", "B"):
            variant = test.variant(label)
            metrics = variant.metrics
            self._print(f"  Variant {label} ({variant.name}):")
            self._print(f"    Sessions: {metrics.total_sessions}")
            self._print(f"    Success Rate: {metrics.avg_success_rate * 100:.2f}%")
            self._print(f"    Avg Satisfaction: {metrics.avg_satisfaction:.1f}/5")

    def commit_metrics(self, metrics: CommitMetrics) -> None:
        if not self.enabled:
            return
        self._kv("AI/Dev Split", f"{metrics.ai_percentage}%/{metrics.dev_percentage}%")
        self._kv(
            "Commits",
            f"{metrics.total_commits} total ({metrics.ai_commits} AI, "
            f"{metrics.dev_commits} Dev, {metrics.other_commits} Other)",
        )
        self._kv(
            "Code Changes",
            f"+{metrics.lines_added}/-{metrics.lines_removed} lines, {metrics.files_changed} files",
        )
        self._kv("Duration", metrics.branch_age)

    def bullets(self, lines: Iterable[str], prefix: str = "  - ") -> None:
        for item in lines:
            self._print(f"{prefix}{item}")

    def _tagged(self, tag: str, message: str) -> None:
        if not self.enabled:
            return
        if self._use_color():
            self._print(f"{_COLORS[tag]}[{tag}]{_RESET} {message}")
        else:
            self._print(f"[{tag}] {message}")

    def _use_color(self) -> bool:
        if self.color is not None:
            return self.color
        if "tty" not in self._color_cache:
            isatty = getattr(self.stream, "isatty", None)
            self._color_cache["tty"] = bool(isatty and isatty())
        return self._color_cache["tty"]

    def _section(self, title: str) -> None:
        self._print("")
        self._print(f"=== {title} ===")

    def _kv(self, key: str, value: str) -> None:
        self._print(f"- {key}: {value}")

    def _print(self, line: str) -> None:
        if not self.enabled:
            return
        self.stream.write(line + "\n")
        self.stream.flush()
