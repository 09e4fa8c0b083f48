"""Fixed-ladder spaced repetition scheduler.

正解で習熟度を1段上げ、段に応じた日数だけ次回出題を先送りする。不正解で1段
下げ、即座に再出題対象へ戻す。学習モデルは持たず、同じ入力には常に同じ結果を
返す純粋関数として実装し、ストアへの書き込みは呼び出し側で行う。
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from types import MappingProxyType

from .models.item import MAX_MASTERY_LEVEL, ReviewItem

# 習熟度 → 次回までの日数。1/3/7/14/30 は従来挙動と一致させるための既定値で、
# 将来のチューニング候補。
REVIEW_INTERVAL_DAYS: Mapping[int, int] = MappingProxyType({1: 1, 2: 3, 3: 7, 4: 14, 5: 30})
DEFAULT_INTERVAL_DAYS = 1


def interval_for(level: int, intervals: Mapping[int, int] = REVIEW_INTERVAL_DAYS) -> timedelta:
    """Return the review interval for a mastery level (unknown levels map to 1 day)."""

    return timedelta(days=intervals.get(level, DEFAULT_INTERVAL_DAYS))


def apply_outcome(
    item: ReviewItem,
    correct: bool,
    now: datetime,
    intervals: Mapping[int, int] = REVIEW_INTERVAL_DAYS,
) -> ReviewItem:
    """Return the item's state after one graded answer.

    - correct: level+1 (max 5), next review = now + interval(level')
    - incorrect: level-1 (min 0), next review = now
    - always: review_count+1, last_reviewed_at=now, is_mastered = level' >= 5
    """

    if correct:
        level = min(MAX_MASTERY_LEVEL, item.mastery_level + 1)
        next_review_at = now + interval_for(level, intervals)
    else:
        level = max(0, item.mastery_level - 1)
        next_review_at = now

    return item.model_copy(
        update={
            "mastery_level": level,
            "next_review_at": next_review_at,
            "is_mastered": level >= MAX_MASTERY_LEVEL,
            "review_count": item.review_count + 1,
            "last_reviewed_at": now,
        }
    )


def is_answer_correct(submitted: str, expected: str) -> bool:
    """Grade a typed answer: trimmed, case-insensitive exact match."""

    return submitted.strip().lower() == (expected or "").lower()


class ScheduleEngine:
    """Injectable wrapper around :func:`apply_outcome` with an overridable ladder."""

    def __init__(self, intervals: Mapping[int, int] | None = None) -> None:
        self._intervals: Mapping[int, int] = MappingProxyType(
            dict(intervals if intervals is not None else REVIEW_INTERVAL_DAYS)
        )

    @property
    def intervals(self) -> Mapping[int, int]:
        return self._intervals

    def interval_for(self, level: int) -> timedelta:
        return interval_for(level, self._intervals)

    def apply_outcome(self, item: ReviewItem, correct: bool, now: datetime) -> ReviewItem:
        return apply_outcome(item, correct, now, self._intervals)
