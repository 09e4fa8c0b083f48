"""Ports (interfaces) for review item persistence.

リポジトリやサービスはこの抽象にのみ依存し、SQLite 実装やインメモリ実装を
差し替えられるようにする。変更通知はペイロードを持たない「何か変わった」合図で、
受け手は再クエリして最新状態を得る。
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date, datetime
from enum import Enum

from ..errors import StoreError
from ..logging import logger
from ..models.item import MAX_MASTERY_LEVEL, ReviewItem
from ..models.story import DailyStory

ChangeListener = Callable[[], None]
ItemMutator = Callable[[ReviewItem], ReviewItem]
ItemPredicate = Callable[[ReviewItem], bool]


class SortOrder(str, Enum):
    created_desc = "created_desc"
    created_asc = "created_asc"
    next_review_asc = "next_review_asc"


def sort_items(items: list[ReviewItem], order: SortOrder | None) -> list[ReviewItem]:
    """Sort items in memory; `None` next-review dates sort first (most overdue)."""

    if order is None:
        return items
    if order is SortOrder.created_desc:
        return sorted(items, key=lambda it: (it.created_at, it.id), reverse=True)
    if order is SortOrder.created_asc:
        return sorted(items, key=lambda it: (it.created_at, it.id))
    return sorted(
        items,
        key=lambda it: (
            it.next_review_at is not None,
            it.next_review_at or it.created_at,
            it.id,
        ),
    )


def sync_mastery(item: ReviewItem) -> ReviewItem:
    """Return `item` with `is_mastered` recomputed from `mastery_level`.

    model_copy はバリデーションを通らないため、書き込み前に必ずここで整合させる。
    """

    expected_mastered = item.mastery_level >= MAX_MASTERY_LEVEL
    if item.is_mastered != expected_mastered:
        item = item.model_copy(update={"is_mastered": expected_mastered})
    return item


def check_mutation(before: ReviewItem, after: ReviewItem) -> ReviewItem:
    """Validate a mutator's result before it is written."""

    if after.id != before.id:
        raise StoreError(f"mutator changed immutable id of {before.id}")
    if after.created_at != before.created_at:
        raise StoreError(f"mutator changed immutable created_at of {before.id}")
    return sync_mastery(after)


class ChangeNotifier:
    """Listener registry shared by store implementations."""

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []
        self._listeners_lock = threading.Lock()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener and return a callable that unregisters it."""

        with self._listeners_lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._listeners_lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return _unsubscribe

    def _emit_change(self, reason: str) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception as exc:
                # 1つの購読者の失敗で書き込み側を止めない
                logger.warning(
                    "store_change_listener_failed",
                    reason=reason,
                    error_type=type(exc).__name__,
                    error=str(exc)[:200],
                )


class ReviewItemStore(ChangeNotifier, ABC):
    """Durable collection of review items.

    Implementations:
        - SQLiteReviewItemStore: file-backed, soft deletes rows.
        - InMemoryReviewItemStore: process-local, used by tests and demos.
    """

    @abstractmethod
    def create(self, item: ReviewItem) -> str:
        """Persist a new item and return its id."""

    @abstractmethod
    def get(self, item_id: str) -> ReviewItem:
        """Return a live item or raise NotFoundError."""

    @abstractmethod
    def update(self, item_id: str, mutator: ItemMutator) -> ReviewItem:
        """Atomically apply `mutator` to the stored item and return the new state."""

    @abstractmethod
    def delete(self, item_id: str) -> None:
        """Delete an item; raises NotFoundError when it is not live."""

    @abstractmethod
    def query_all(
        self,
        sort: SortOrder | None = SortOrder.created_desc,
        predicate: ItemPredicate | None = None,
        *,
        language: str | None = None,
        include_deleted: bool = False,
    ) -> list[ReviewItem]:
        """Return items matching the attribute filter and predicate."""

    def query_due(self, at: datetime) -> list[ReviewItem]:
        """Non-mastered items due at `at`, most overdue first."""

        return self.query_all(
            sort=SortOrder.next_review_asc,
            predicate=lambda it: not it.is_mastered and it.is_due(at),
        )

    def close(self) -> None:
        """Release resources held by the store."""


class StudyDayStore(ABC):
    """Persistence for the set of calendar days with study activity."""

    @abstractmethod
    def load_study_days(self) -> set[date]:
        ...

    @abstractmethod
    def add_study_day(self, day: date) -> bool:
        """Insert a day; returns False when it was already present."""


StoryMutator = Callable[[DailyStory], DailyStory]


class StoryStore(ABC):
    """Persistence for generated daily stories.

    物語の書き込みは単語の変更通知を発行しない（リポジトリの再読込は不要なため）。
    """

    @abstractmethod
    def save_story(self, story: DailyStory) -> str:
        """Insert a story and return its id."""

    @abstractmethod
    def get_story(self, story_id: str) -> DailyStory:
        """Return a story or raise NotFoundError."""

    @abstractmethod
    def update_story(self, story_id: str, mutator: StoryMutator) -> DailyStory:
        ...

    @abstractmethod
    def delete_story(self, story_id: str) -> None:
        """Remove a story permanently; raises NotFoundError when absent."""

    @abstractmethod
    def query_stories(
        self,
        *,
        language: str | None = None,
        day: date | None = None,
        limit: int | None = None,
    ) -> list[DailyStory]:
        """Stories newest first (by day, then creation time, then save order)."""


def sort_stories(stories: list[DailyStory]) -> list[DailyStory]:
    """Newest first. `stories` must be in insertion order; later saves win ties."""

    return sorted(reversed(stories), key=lambda st: (st.day, st.created_at), reverse=True)
