"""Study streak bookkeeping.

「その日に1問以上正解した」ことを暦日単位で記録する。日付は利用者の
ローカル暦（既定はプロセスのローカルタイムゾーン）で切り、削除はしない。
"""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, tzinfo

from .clock import Clock, SystemClock
from .logging import logger
from .store.base import StudyDayStore


class StudyHistory:
    """Set of calendar days with study activity, backed by a `StudyDayStore`."""

    def __init__(
        self,
        store: StudyDayStore,
        clock: Clock | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._tz = tz
        self._lock = threading.Lock()
        self._days: set[date] = set(store.load_study_days())

    def _local_day(self, moment: datetime | date | None) -> date:
        if moment is None:
            moment = self._clock.now()
        if isinstance(moment, datetime):
            # tz=None の astimezone はプロセスのローカルタイムゾーンへ変換する
            return moment.astimezone(self._tz).date()
        return moment

    def record_session(self, now: datetime | None = None) -> bool:
        """Mark today as studied. Returns False when it was already marked."""

        day = self._local_day(now)
        with self._lock:
            if day in self._days:
                return False
            self._store.add_study_day(day)
            self._days.add(day)
        logger.info("study_day_recorded", day=day.isoformat())
        return True

    def has_studied(self, day: date | datetime) -> bool:
        target = self._local_day(day)
        with self._lock:
            return target in self._days

    def current_streak(self, now: datetime | None = None) -> int:
        """Count today (if marked) plus the unbroken run of marked days before it.

        今日が未記録でも昨日までの連続日数は数える（今日の学習前に連続が
        途切れて見えないようにするため）。
        """

        today = self._local_day(now)
        with self._lock:
            days = set(self._days)
        streak = 1 if today in days else 0
        cursor = today - timedelta(days=1)
        while cursor in days:
            streak += 1
            cursor -= timedelta(days=1)
        return streak

    def recent_history(self, days: int, now: datetime | None = None) -> list[date]:
        """The last `days` calendar days including today, oldest first."""

        if days <= 0:
            return []
        today = self._local_day(now)
        return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]

    def studied_days(self) -> frozenset[date]:
        with self._lock:
            return frozenset(self._days)
