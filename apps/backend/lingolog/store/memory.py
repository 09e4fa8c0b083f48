from __future__ import annotations

import threading
from datetime import UTC, date, datetime

from ..errors import NotFoundError, StoreError
from ..models.item import ReviewItem
from ..models.story import DailyStory
from .base import (
    ItemMutator,
    ItemPredicate,
    ReviewItemStore,
    SortOrder,
    StoryMutator,
    StoryStore,
    StudyDayStore,
    check_mutation,
    sort_items,
    sort_stories,
    sync_mastery,
)


class InMemoryReviewItemStore(ReviewItemStore, StudyDayStore, StoryStore):
    """Process-local store keeping tombstones for deleted items.

    テストやデモ用途のストア。削除は墓標（deleted_at）として残し、
    SQLite 実装と同じく既定のクエリからは除外する。
    """

    def __init__(self, items: list[ReviewItem] | None = None) -> None:
        super().__init__()
        self._items: dict[str, ReviewItem] = {}
        self._days: set[date] = set()
        self._stories: dict[str, DailyStory] = {}
        self._lock = threading.RLock()
        for item in items or []:
            self._items[item.id] = sync_mastery(item)

    def create(self, item: ReviewItem) -> str:
        item = sync_mastery(item)
        with self._lock:
            if item.id in self._items:
                raise StoreError(f"review item {item.id} already exists")
            self._items[item.id] = item
        self._emit_change("create")
        return item.id

    def get(self, item_id: str) -> ReviewItem:
        with self._lock:
            item = self._items.get(item_id)
        if item is None or item.is_deleted:
            raise NotFoundError(item_id)
        return item

    def update(self, item_id: str, mutator: ItemMutator) -> ReviewItem:
        with self._lock:
            current = self._items.get(item_id)
            if current is None or current.is_deleted:
                raise NotFoundError(item_id)
            updated = check_mutation(current, mutator(current))
            self._items[item_id] = updated
        self._emit_change("update")
        return updated

    def delete(self, item_id: str) -> None:
        with self._lock:
            current = self._items.get(item_id)
            if current is None or current.is_deleted:
                raise NotFoundError(item_id)
            self._items[item_id] = current.model_copy(update={"deleted_at": datetime.now(UTC)})
        self._emit_change("delete")

    def query_all(
        self,
        sort: SortOrder | None = SortOrder.created_desc,
        predicate: ItemPredicate | None = None,
        *,
        language: str | None = None,
        include_deleted: bool = False,
    ) -> list[ReviewItem]:
        with self._lock:
            snapshot = list(self._items.values())
        items = [
            it
            for it in snapshot
            if (include_deleted or not it.is_deleted)
            and (language is None or it.language == language)
            and (predicate is None or predicate(it))
        ]
        return sort_items(items, sort)

    # --- study days ---
    def load_study_days(self) -> set[date]:
        with self._lock:
            return set(self._days)

    def add_study_day(self, day: date) -> bool:
        with self._lock:
            if day in self._days:
                return False
            self._days.add(day)
            return True

    # --- stories ---
    def save_story(self, story: DailyStory) -> str:
        with self._lock:
            if story.id in self._stories:
                raise StoreError(f"story {story.id} already exists")
            self._stories[story.id] = story
        return story.id

    def get_story(self, story_id: str) -> DailyStory:
        with self._lock:
            story = self._stories.get(story_id)
        if story is None:
            raise NotFoundError(story_id, kind="story")
        return story

    def update_story(self, story_id: str, mutator: StoryMutator) -> DailyStory:
        with self._lock:
            current = self._stories.get(story_id)
            if current is None:
                raise NotFoundError(story_id, kind="story")
            updated = mutator(current)
            if updated.id != story_id:
                raise StoreError(f"mutator changed immutable id of story {story_id}")
            self._stories[story_id] = updated
        return updated

    def delete_story(self, story_id: str) -> None:
        with self._lock:
            if self._stories.pop(story_id, None) is None:
                raise NotFoundError(story_id, kind="story")

    def query_stories(
        self,
        *,
        language: str | None = None,
        day: date | None = None,
        limit: int | None = None,
    ) -> list[DailyStory]:
        with self._lock:
            snapshot = list(self._stories.values())
        found = sort_stories(
            [
                st
                for st in snapshot
                if (language is None or st.language == language) and (day is None or st.day == day)
            ]
        )
        return found if limit is None else found[:limit]
