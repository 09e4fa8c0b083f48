from datetime import UTC, date, datetime, timedelta, timezone

from factories import T0
from lingolog.clock import FrozenClock
from lingolog.history import StudyHistory
from lingolog.store import InMemoryReviewItemStore


def _history(store=None, clock=None, tz=UTC) -> StudyHistory:
    return StudyHistory(store or InMemoryReviewItemStore(), clock=clock or FrozenClock(T0), tz=tz)


def test_record_session_is_idempotent_per_day() -> None:
    store = InMemoryReviewItemStore()
    history = _history(store)

    assert history.record_session(T0) is True
    assert history.record_session(T0 + timedelta(hours=3)) is False

    assert store.load_study_days() == {date(2024, 1, 15)}
    assert history.has_studied(date(2024, 1, 15))
    assert history.has_studied(T0)


def test_record_session_defaults_to_clock() -> None:
    clock = FrozenClock(T0)
    history = _history(clock=clock)

    history.record_session()

    assert history.studied_days() == frozenset({date(2024, 1, 15)})


def test_streak_counts_today_and_consecutive_prior_days() -> None:
    history = _history()
    for offset in (0, 1, 2, 4):
        history.record_session(T0 - timedelta(days=offset))

    assert history.current_streak(T0) == 3


def test_streak_keeps_yesterdays_run_when_today_is_unmarked() -> None:
    history = _history()
    history.record_session(T0 - timedelta(days=1))
    history.record_session(T0 - timedelta(days=2))

    assert history.current_streak(T0) == 2


def test_streak_is_zero_without_recent_activity() -> None:
    history = _history()
    history.record_session(T0 - timedelta(days=3))

    assert history.current_streak(T0) == 0


def test_recent_history_is_oldest_first_and_ends_today() -> None:
    history = _history()

    days = history.recent_history(7, T0)

    assert len(days) == 7
    assert days[0] == date(2024, 1, 9)
    assert days[-1] == date(2024, 1, 15)
    assert days == sorted(days)
    assert history.recent_history(0, T0) == []


def test_days_follow_the_local_calendar() -> None:
    tokyo = timezone(timedelta(hours=9))
    history = _history(tz=tokyo)

    history.record_session(datetime(2024, 1, 15, 20, 0, tzinfo=UTC))

    assert history.studied_days() == frozenset({date(2024, 1, 16)})


def test_history_survives_reload(sqlite_store) -> None:
    _history(sqlite_store).record_session(T0)

    reloaded = _history(sqlite_store)

    assert reloaded.has_studied(date(2024, 1, 15))
    assert reloaded.current_streak(T0) == 1
