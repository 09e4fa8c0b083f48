from __future__ import annotations

from ..config import settings
from .base import (
    ChangeListener,
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
from .memory import InMemoryReviewItemStore
from .sqlite_store import SQLiteReviewItemStore


def create_store(db_path: str | None = None) -> SQLiteReviewItemStore:
    """SQLite ストアを構築する。

    パス未指定時は設定値（LINGOLOG_DB_PATH）を使う。`:memory:` を渡すと
    プロセス内だけで完結するストアになる。
    """

    return SQLiteReviewItemStore(db_path or settings.lingolog_db_path)


__all__ = [
    "ChangeListener",
    "InMemoryReviewItemStore",
    "ItemMutator",
    "ItemPredicate",
    "ReviewItemStore",
    "SQLiteReviewItemStore",
    "SortOrder",
    "StoryMutator",
    "StoryStore",
    "StudyDayStore",
    "check_mutation",
    "create_store",
    "sort_items",
    "sort_stories",
    "sync_mastery",
]
