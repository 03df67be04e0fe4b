from __future__ import annotations

import hashlib
from pathlib import Path
from typing import List, Optional

import pytest

from schemas.ab_test_ir import ABTest, ABTestConfig, ABTestVariants, Variant
from schemas.bucket_ir import VariantMetrics
from schemas.session_ir import ABTestRef, PromptInfo, ResponseQuality, SessionRecord
from skills.ab_testing import (
    ABTestStore,
    analyze_results,
    assign,
    assignment_parity,
    refresh_metrics,
    samples_needed,
    stop_test,
)
from skills.storage import InMemoryBackend
from workflow.errors import (
    AmbiguousExperimentError,
    ExperimentExistsError,
    ExperimentNotFoundError,
)


def _test(
    name: str = "bug_fix_v2",
    targets: Optional[List[str]] = None,
    status: str = "active",
    min_sample_size: int = 10,
) -> ABTest:
    return ABTest(
        test_name=name,
        description="compare bug prompts",
        status=status,
        variants=ABTestVariants(
            A=Variant(name="control", template="linear_task_v1"),
            B=Variant(name="structured", template="bug_fix_v2"),
        ),
        config=ABTestConfig(
            target_issue_types=targets if targets is not None else ["bug"],
            min_sample_size=min_sample_size,
        ),
    )


def _with_metrics(a: VariantMetrics, b: VariantMetrics) -> ABTest:
    test = _test()
    test.variants.A.metrics = a
    test.variants.B.metrics = b
    return test


def _session(session_id: str, variant: str, success: float, satisfaction: float) -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        issue_id="ABC-1",
        issue_type="bug",
        prompt=PromptInfo(original="p", template_used="t"),
        response_quality=ResponseQuality(success_rate=success, user_satisfaction=satisfaction),
        status="completed",
        ab_test=ABTestRef(test_name="bug_fix_v2", variant=variant),
    )


def test_assignment_is_deterministic_and_matches_md5_parity() -> None:
    tests = [_test()]
    first = assign(tests, "alice", "bug")
    second = assign(tests, "alice", "bug")
    assert first == second
    expected = "A" if hashlib.md5(b"alice_bug").digest()[0] % 2 == 0 else "B"
    assert first.variant == expected
    assert assignment_parity("alice", "bug") == hashlib.md5(b"alice_bug").digest()[0] % 2
    assert first.template == tests[0].variant(expected).template


def test_assignment_ignores_untargeted_and_stopped_tests() -> None:
    assert assign([_test()], "alice", "feature") is None
    assert assign([_test(status="stopped")], "alice", "bug") is None
    assert assign([], "alice", "bug") is None


def test_two_active_tests_for_one_issue_type_are_ambiguous() -> None:
    tests = [_test("first"), _test("second", targets=["bug", "feature"])]
    with pytest.raises(AmbiguousExperimentError) as info:
        assign(tests, "alice", "bug")
    assert info.value.test_names == ["first", "second"]
    assert assign(tests, "alice", "feature").test_name == "second"


def test_b_wins_when_strictly_better_on_both_metrics() -> None:
    test = _with_metrics(
        VariantMetrics(avg_success_rate=0.6, avg_satisfaction=3.0),
        VariantMetrics(avg_success_rate=0.8, avg_satisfaction=4.0),
    )
    assert analyze_results(test) == "B"


def test_mixed_result_has_no_winner() -> None:
    test = _with_metrics(
        VariantMetrics(avg_success_rate=0.8, avg_satisfaction=4.0),
        VariantMetrics(avg_success_rate=0.6, avg_satisfaction=4.5),
    )
    assert analyze_results(test) is None


def test_a_wins_and_ties_do_not() -> None:
    a_better = _with_metrics(
        VariantMetrics(avg_success_rate=0.9, avg_satisfaction=4.5),
        VariantMetrics(avg_success_rate=0.5, avg_satisfaction=3.0),
    )
    tie = _with_metrics(
        VariantMetrics(avg_success_rate=0.8, avg_satisfaction=4.0),
        VariantMetrics(avg_success_rate=0.8, avg_satisfaction=4.5),
    )
    assert analyze_results(a_better) == "A"
    assert analyze_results(tie) is None


def test_refresh_metrics_sets_winner_and_sample_flag() -> None:
    records = [
        _session("s1", "A", 0.5, 3.0),
        _session("s2", "B", 0.9, 5.0),
        _session("s3", "B", 0.8, 4.0),
    ]
    small = refresh_metrics(_test(min_sample_size=1), records)
    assert small.variants.A.metrics.total_sessions == 1
    assert small.variants.B.metrics.total_sessions == 2
    assert small.variants.B.metrics.successful_sessions == 2
    assert small.results.winning_variant == "B"
    assert small.results.statistical_significance is True
    assert small.results.confidence_level is None

    large = refresh_metrics(_test(min_sample_size=5), records)
    assert large.results.winning_variant == "B"
    assert large.results.statistical_significance is False
    assert samples_needed(large) == {"A": 4, "B": 3}


def test_refresh_metrics_resets_variant_without_sessions() -> None:
    test = _test()
    test.variants.A.metrics = VariantMetrics(total_sessions=4, avg_success_rate=0.9)
    refreshed = refresh_metrics(test, [_session("s1", "B", 0.9, 5.0)])
    assert refreshed.variants.A.metrics == VariantMetrics()


def test_stop_is_one_way() -> None:
    test = _test()
    assert stop_test(test) is True
    assert test.status == "stopped"
    stopped_at = test.stopped
    assert stopped_at and stopped_at.endswith("Z")
    assert stop_test(test) is False
    assert test.stopped == stopped_at


def test_store_create_rejects_duplicates_and_sets_created() -> None:
    store = ABTestStore(InMemoryBackend())
    created = store.create(_test())
    assert created.created
    with pytest.raises(ExperimentExistsError):
        store.create(_test())
    assert store.get("bug_fix_v2").variants.B.template == "bug_fix_v2"


def test_store_require_missing_raises(tmp_path: Path) -> None:
    store = ABTestStore.from_dir(tmp_path)
    assert store.get("nope") is None
    with pytest.raises(ExperimentNotFoundError):
        store.require("nope")


def test_target_issue_types_are_normalized() -> None:
    config = ABTestConfig(target_issue_types=["bug", " feature ", "bug", ""])
    assert config.target_issue_types == ["bug", "feature"]


def test_assignment_splits_callers_roughly_evenly() -> None:
    tests = [_test()]
    variants = [assign(tests, f"caller-{index}", "bug").variant for index in range(1000)]
    share_a = variants.count("A") / len(variants)
    assert 0.4 < share_a < 0.6
    assert set(variants) == {"A", "B"}
