from datetime import timedelta

import pytest

from factories import T0, make_item
from lingolog.errors import NotFoundError, StoreError
from lingolog.models.item import ReviewItem
from lingolog.store import (
    InMemoryReviewItemStore,
    ReviewItemStore,
    SortOrder,
    SQLiteReviewItemStore,
    create_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path) -> ReviewItemStore:
    if request.param == "memory":
        yield InMemoryReviewItemStore()
        return
    sqlite = SQLiteReviewItemStore(str(tmp_path / "store.sqlite3"))
    try:
        yield sqlite
    finally:
        sqlite.close()


def test_create_and_get_round_trip(store: ReviewItemStore) -> None:
    item = make_item("converge", translation="収束する", language="ja", note="paper")

    assert store.create(item) == item.id
    loaded = store.get(item.id)

    assert loaded == item
    assert loaded.created_at.tzinfo is not None


def test_duplicate_id_is_rejected(store: ReviewItemStore) -> None:
    item = make_item()
    store.create(item)

    with pytest.raises(StoreError):
        store.create(item)


@pytest.mark.parametrize(
    "level, claimed, expected",
    [(0, True, False), (4, True, False), (5, False, True), (5, True, True)],
)
def test_mastery_flag_is_always_derived_from_level(level: int, claimed: bool, expected: bool) -> None:
    item = ReviewItem(term="x", created_at=T0, mastery_level=level, is_mastered=claimed)

    assert item.is_mastered is expected


def test_mastery_flag_without_level_defaults_to_not_mastered() -> None:
    item = ReviewItem(term="x", created_at=T0, is_mastered=True)

    assert item.mastery_level == 0
    assert item.is_mastered is False


def test_create_normalises_inconsistent_mastery_flag(store: ReviewItemStore) -> None:
    # model_copy skips validation, so the store has to repair the flag itself
    item = make_item().model_copy(update={"is_mastered": True})
    store.create(item)

    assert store.get(item.id).is_mastered is False
    assert [it.id for it in store.query_due(T0)] == [item.id]


def test_memory_store_seed_items_are_normalised() -> None:
    item = make_item(mastery_level=2).model_copy(update={"is_mastered": True})
    store = InMemoryReviewItemStore([item])

    assert store.get(item.id).is_mastered is False


def test_update_applies_mutator_and_keeps_mastery_consistent(store: ReviewItemStore) -> None:
    item = make_item(mastery_level=4)
    store.create(item)

    updated = store.update(item.id, lambda cur: cur.model_copy(update={"mastery_level": 5}))

    assert updated.is_mastered is True
    assert store.get(item.id).is_mastered is True


def test_update_rejects_identity_changes(store: ReviewItemStore) -> None:
    item = make_item()
    store.create(item)

    with pytest.raises(StoreError):
        store.update(item.id, lambda cur: cur.model_copy(update={"created_at": T0 + timedelta(days=1)}))
    with pytest.raises(StoreError):
        store.update(item.id, lambda cur: cur.model_copy(update={"id": "other"}))

    assert store.get(item.id) == item


def test_missing_ids_raise_not_found(store: ReviewItemStore) -> None:
    with pytest.raises(NotFoundError):
        store.get("nope")
    with pytest.raises(NotFoundError):
        store.update("nope", lambda cur: cur)
    with pytest.raises(NotFoundError) as excinfo:
        store.delete("nope")
    assert excinfo.value.item_id == "nope"


def test_delete_hides_item_but_keeps_tombstone(store: ReviewItemStore) -> None:
    keep, gone = make_item("keep"), make_item("gone")
    store.create(keep)
    store.create(gone)

    store.delete(gone.id)

    assert [it.id for it in store.query_all()] == [keep.id]
    tombstones = [it for it in store.query_all(include_deleted=True) if it.is_deleted]
    assert [it.id for it in tombstones] == [gone.id]
    with pytest.raises(NotFoundError):
        store.get(gone.id)
    with pytest.raises(NotFoundError):
        store.delete(gone.id)


def test_query_all_filters_and_sorts(store: ReviewItemStore) -> None:
    first = make_item("uno", language="es", created_at=T0)
    second = make_item("un", language="fr", created_at=T0 + timedelta(minutes=1))
    third = make_item("dos", language="es", created_at=T0 + timedelta(minutes=2))
    for item in (second, third, first):
        store.create(item)

    assert [it.term for it in store.query_all()] == ["dos", "un", "uno"]
    assert [it.term for it in store.query_all(SortOrder.created_asc)] == ["uno", "un", "dos"]
    assert [it.term for it in store.query_all(language="es")] == ["dos", "uno"]
    assert [it.term for it in store.query_all(predicate=lambda it: it.term.startswith("u"))] == [
        "un",
        "uno",
    ]


def test_query_due_orders_by_next_review(store: ReviewItemStore) -> None:
    now = T0 + timedelta(days=2)
    store.create(make_item("soon", next_review_at=T0 + timedelta(days=1)))
    store.create(make_item("never", next_review_at=None))
    store.create(make_item("oldest", next_review_at=T0))
    store.create(make_item("future", next_review_at=now + timedelta(hours=1)))
    store.create(make_item("done", mastery_level=5, next_review_at=T0))

    assert [it.term for it in store.query_due(now)] == ["never", "oldest", "soon"]


def test_change_events_follow_each_write(store: ReviewItemStore) -> None:
    events: list[int] = []
    unsubscribe = store.subscribe(lambda: events.append(1))
    item = make_item()

    store.create(item)
    store.update(item.id, lambda cur: cur.model_copy(update={"note": "x"}))
    store.delete(item.id)
    assert len(events) == 3

    unsubscribe()
    store.create(make_item())
    assert len(events) == 3


def test_failing_listener_does_not_fail_the_write(store: ReviewItemStore) -> None:
    def _boom() -> None:
        raise RuntimeError("listener failure")

    store.subscribe(_boom)
    item = make_item()

    store.create(item)

    assert store.get(item.id) == item


def test_study_days_are_idempotent(store) -> None:
    day = T0.date()

    assert store.add_study_day(day) is True
    assert store.add_study_day(day) is False
    assert store.load_study_days() == {day}


def test_sqlite_store_persists_across_instances(tmp_path) -> None:
    path = str(tmp_path / "nested" / "lingolog.sqlite3")
    first = SQLiteReviewItemStore(path)
    item = make_item("persist")
    first.create(item)
    first.add_study_day(T0.date())
    first.close()

    second = SQLiteReviewItemStore(path)

    assert second.get(item.id) == item
    assert second.load_study_days() == {T0.date()}


def test_sqlite_purge_deleted_removes_tombstones(sqlite_store: SQLiteReviewItemStore) -> None:
    item = make_item()
    sqlite_store.create(item)
    sqlite_store.delete(item.id)

    assert sqlite_store.purge_deleted() == 1
    assert sqlite_store.query_all(include_deleted=True) == []


def test_in_memory_sqlite_shares_data_between_connections() -> None:
    store = create_store(":memory:")
    try:
        item = make_item()
        store.create(item)
        assert store.get(item.id) == item
        assert [it.id for it in store.query_all()] == [item.id]
    finally:
        store.close()
