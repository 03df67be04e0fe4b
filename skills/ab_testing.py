from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from schemas.ab_test_ir import ABTest, VariantAssignment
from schemas.bucket_ir import VariantMetrics
from schemas.session_ir import SessionRecord
from schemas.strict_base import VariantLabel
from skills.aggregator import UnsetPolicy, by_ab_variant, compute_buckets
from skills.storage import JsonDirectoryBackend, RecordBackend
from workflow.errors import (
    AmbiguousExperimentError,
    ExperimentExistsError,
    ExperimentNotFoundError,
)


def _iso_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ABTestStore:
    def __init__(self, backend: RecordBackend) -> None:
        self.backend = backend

    @classmethod
    def from_dir(cls, path: Path) -> "ABTestStore":
        return cls(JsonDirectoryBackend(path))

    def create(self, test: ABTest) -> ABTest:
        if self.backend.get(test.test_name) is not None:
            raise ExperimentExistsError(f"A/B test '{test.test_name}' already exists")
        if not test.created:
            test = test.model_copy(update={"created": _iso_now()})
        self.save(test)
        return test

    def save(self, test: ABTest) -> None:
        self.backend.put(test.test_name, test.model_dump(mode="json"))

    def get(self, test_name: str) -> Optional[ABTest]:
        try:
            data = self.backend.get(test_name)
        except ValueError:
            return None
        if data is None:
            return None
        try:
            return ABTest.model_validate(data)
        except ValidationError:
            return None

    def require(self, test_name: str) -> ABTest:
        test = self.get(test_name)
        if test is None:
            raise ExperimentNotFoundError(f"A/B test '{test_name}' not found")
        return test

    def all(self) -> List[ABTest]:
        tests: List[ABTest] = []
        for data in self.backend.scan_all():
            try:
                tests.append(ABTest.model_validate(data))
            except ValidationError:
                continue
        return tests


def assignment_parity(caller_key: str, issue_type: str) -> int:
    digest = hashlib.md5(f"{caller_key}_{issue_type}".encode("utf-8")).digest()
    return digest[0] % 2


def active_tests_for(tests: Iterable[ABTest], issue_type: str) -> List[ABTest]:
    return [test for test in tests if test.status == "active" and test.targets(issue_type)]


def assign(
    tests: Iterable[ABTest],
    caller_key: str,
    issue_type: str,
) -> Optional[VariantAssignment]:
    """Stable variant for (caller, issue type): even hash parity -> A, odd -> B."""
    candidates = active_tests_for(tests, issue_type)
    if not candidates:
        return None
    if len(candidates) > 1:
        raise AmbiguousExperimentError(issue_type, sorted(test.test_name for test in candidates))
    test = candidates[0]
    label: VariantLabel = "A" if assignment_parity(caller_key, issue_type) == 0 else "B"
    return VariantAssignment(
        test_name=test.test_name,
        variant=label,
        template=test.variant(label).template,
    )


def analyze_results(test: ABTest) -> Optional[VariantLabel]:
    """Dominance rule: a variant wins only if strictly better on both metrics."""
    a = test.variants.A.metrics
    b = test.variants.B.metrics
    if b.avg_success_rate > a.avg_success_rate and b.avg_satisfaction > a.avg_satisfaction:
        return "B"
    if a.avg_success_rate > b.avg_success_rate and a.avg_satisfaction > b.avg_satisfaction:
        return "A"
    return None


def sample_size_reached(test: ABTest) -> bool:
    minimum = test.config.min_sample_size
    return (
        test.variants.A.metrics.total_sessions >= minimum
        and test.variants.B.metrics.total_sessions >= minimum
    )


def samples_needed(test: ABTest) -> Dict[str, int]:
    minimum = test.config.min_sample_size
    return {
        label: max(0, minimum - test.variant(label).metrics.total_sessions)
        for label in ("A", "B")
    }


def refresh_metrics(
    test: ABTest,
    records: Iterable[SessionRecord],
    unset_policy: UnsetPolicy = "zero",
) -> ABTest:
    buckets = compute_buckets(records, by_ab_variant(test.test_name), unset_policy)
    for label in ("A", "B"):
        stats = buckets.get(label)
        metrics = (
            VariantMetrics(**stats.model_dump(exclude={"key"})) if stats else VariantMetrics()
        )
        test.variant(label).metrics = metrics
    winner = analyze_results(test)
    test.results.winning_variant = winner
    test.results.statistical_significance = winner is not None and sample_size_reached(test)
    return test


def stop_test(test: ABTest) -> bool:
    """Move an active test to stopped; returns False if it was already stopped."""
    if test.status == "stopped":
        return False
    test.status = "stopped"
    test.stopped = _iso_now()
    return True
