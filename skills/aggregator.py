"""Bucket statistics over stored sessions.

Every call recomputes from the full record set; nothing is cached. Buckets
with no sessions are omitted.

Unset ratings follow ``unset_policy``:

- ``"zero"`` (default): an unset success rate or satisfaction counts as 0,
  so sessions without feedback pull the averages down.
- ``"exclude"``: unset values are left out of the means; a bucket whose
  sessions are all unrated reports 0.0.

Either way an unset success rate is never "successful".
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Literal, Optional

from schemas.bucket_ir import BucketKey, BucketStats
from schemas.session_ir import SessionRecord

SUCCESS_THRESHOLD = 0.7

UnsetPolicy = Literal["zero", "exclude"]
GroupBy = Callable[[SessionRecord], Optional[BucketKey]]


def by_issue_type(record: SessionRecord) -> Optional[BucketKey]:
    return record.issue_type or None


def by_template(record: SessionRecord) -> Optional[BucketKey]:
    return record.prompt.template_used or None


def by_tech_tag(tag: str) -> GroupBy:
    tag = tag.strip().lower()

    def _group(record: SessionRecord) -> Optional[BucketKey]:
        return tag in record.project_context.tech_stack

    return _group


def by_ab_variant(test_name: str) -> GroupBy:
    def _group(record: SessionRecord) -> Optional[BucketKey]:
        if record.ab_test is None or record.ab_test.test_name != test_name:
            return None
        return record.ab_test.variant

    return _group


def is_successful(record: SessionRecord) -> bool:
    rate = record.response_quality.success_rate
    return rate is not None and rate > SUCCESS_THRESHOLD


def _mean(values: List[Optional[float]], unset_policy: UnsetPolicy) -> float:
    if unset_policy == "zero":
        filled = [value if value is not None else 0.0 for value in values]
    else:
        filled = [value for value in values if value is not None]
    if not filled:
        return 0.0
    return sum(filled) / len(filled)


def summarize(
    key: BucketKey,
    records: List[SessionRecord],
    unset_policy: UnsetPolicy = "zero",
) -> BucketStats:
    return BucketStats(
        key=key,
        total_sessions=len(records),
        successful_sessions=sum(1 for record in records if is_successful(record)),
        avg_satisfaction=_mean(
            [record.response_quality.user_satisfaction for record in records], unset_policy
        ),
        avg_success_rate=_mean(
            [record.response_quality.success_rate for record in records], unset_policy
        ),
    )


def compute_buckets(
    records: Iterable[SessionRecord],
    group_by: GroupBy,
    unset_policy: UnsetPolicy = "zero",
) -> Dict[BucketKey, BucketStats]:
    if unset_policy not in ("zero", "exclude"):
        raise ValueError(f"Unknown unset policy: {unset_policy}")
    grouped: Dict[BucketKey, List[SessionRecord]] = {}
    for record in records:
        key = group_by(record)
        if key is None:
            continue
        grouped.setdefault(key, []).append(record)
    return {key: summarize(key, members, unset_policy) for key, members in grouped.items()}
