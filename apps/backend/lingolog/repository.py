"""In-memory mirror of the review item store.

ストアの内容を作成日時の降順で保持し、出題対象や言語別一覧などの派生ビューを
提供する。ストアの変更通知は `ChangeCoalescer` でまとめてから `refresh()` を
呼ぶ。一括削除中は `set_suppressed(True)` で再読込を止め、
`optimistic_remove()` で先に画面上から消しておく。

なぜ世代番号を持つか:
    ストアの読み出しはロックの外で行うため、読み出し開始後に楽観的削除が
    走ると、古い読み出し結果が削除済みの ID を復活させてしまう。書き込み系の
    操作ごとに世代を進め、開始時と世代が変わった refresh の結果は捨てる。
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from .clock import Clock, SystemClock
from .coalescer import ChangeCoalescer
from .errors import NotFoundError, StoreError
from .logging import logger
from .models.item import ReviewItem
from .store.base import ReviewItemStore, SortOrder, sort_items


class ReviewItemRepository:
    """Sorted, suppressible snapshot of every live review item."""

    def __init__(self, store: ReviewItemStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._lock = threading.RLock()
        # refresh 同士を直列化する（古い読み出しが新しい結果を上書きしないように）
        self._refresh_lock = threading.Lock()
        self._items: tuple[ReviewItem, ...] = ()
        self._suppressed = False
        self._generation = 0
        self._languages: list[str] | None = None
        self._coalescer: ChangeCoalescer | None = None
        self._unsubscribe: Callable[[], None] | None = None

    # --- state ---
    @property
    def items(self) -> tuple[ReviewItem, ...]:
        """Current snapshot, newest first."""

        with self._lock:
            return self._items

    @property
    def suppressed(self) -> bool:
        with self._lock:
            return self._suppressed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    # --- mutation of the mirror ---
    def refresh(self) -> bool:
        """Reload the mirror from the store.

        Returns False when the reload was skipped (suppressed, or overtaken by an
        optimistic removal while reading). Store failures are logged and re-raised;
        the previous snapshot stays in place. Concurrent refreshes run one at a
        time, so a snapshot read earlier never replaces one read later.
        """

        with self._refresh_lock:
            return self._refresh_locked()

    def _refresh_locked(self) -> bool:
        with self._lock:
            if self._suppressed:
                logger.debug("repository_refresh_skipped", reason="suppressed")
                return False
            generation = self._generation

        try:
            fetched = self._store.query_all(sort=SortOrder.created_desc)
        except StoreError as exc:
            logger.error(
                "repository_refresh_failed",
                error_type=type(exc).__name__,
                error=str(exc)[:200],
            )
            raise

        live = sort_items([it for it in fetched if not it.is_deleted], SortOrder.created_desc)

        with self._lock:
            if self._suppressed or generation != self._generation:
                logger.info(
                    "repository_refresh_discarded",
                    reason="suppressed" if self._suppressed else "stale",
                )
                return False
            self._items = tuple(live)
            self._languages = None
        logger.info("repository_refresh", count=len(live))
        return True

    def set_suppressed(self, flag: bool) -> None:
        with self._lock:
            self._suppressed = bool(flag)
        logger.debug("repository_suppression", suppressed=bool(flag))

    def optimistic_remove(self, ids: Iterable[str]) -> int:
        """Drop the given ids from the mirror without touching the store.

        Unknown ids are ignored. Returns the number of items removed.
        """

        targets = set(ids)
        with self._lock:
            kept = tuple(it for it in self._items if it.id not in targets)
            removed = len(self._items) - len(kept)
            self._items = kept
            self._languages = None
            self._generation += 1
        logger.info("repository_optimistic_remove", requested=len(targets), removed=removed)
        return removed

    def replace(self, item: ReviewItem) -> None:
        """Insert or overwrite one item after the store accepted the write."""

        with self._lock:
            others = [it for it in self._items if it.id != item.id]
            if not item.is_deleted:
                others.append(item)
            self._items = tuple(sort_items(others, SortOrder.created_desc))
            self._languages = None
            self._generation += 1

    # --- derived views ---
    def get(self, item_id: str) -> ReviewItem:
        with self._lock:
            for item in self._items:
                if item.id == item_id:
                    return item
        raise NotFoundError(item_id)

    def items_due(self, reference_time: datetime | None = None) -> list[ReviewItem]:
        """Non-mastered items due at `reference_time`, most overdue first.

        未出題（next_review_at が None）の項目は最も期限超過として先頭に並ぶ。
        """

        at = reference_time or self._clock.now()
        with self._lock:
            snapshot = self._items
        due = [it for it in snapshot if not it.is_mastered and it.is_due(at)]
        return sort_items(due, SortOrder.next_review_asc)

    def items_for_language(self, language: str | None) -> list[ReviewItem]:
        with self._lock:
            snapshot = self._items
        if not language:
            return list(snapshot)
        return [it for it in snapshot if it.language == language]

    def available_languages(self) -> list[str]:
        with self._lock:
            if self._languages is None:
                self._languages = sorted({it.language for it in self._items})
            return list(self._languages)

    def search(self, query: str | None, language: str | None = None) -> list[ReviewItem]:
        """Case-insensitive substring match over term, translation and note."""

        items = self.items_for_language(language)
        needle = (query or "").strip().casefold()
        if not needle:
            return items
        return [
            it
            for it in items
            if needle in it.term.casefold()
            or needle in it.translation.casefold()
            or needle in (it.note or "").casefold()
        ]

    def next_review_at(self) -> datetime | None:
        """Earliest scheduled review among non-mastered items."""

        with self._lock:
            snapshot = self._items
        dates = [it.next_review_at for it in snapshot if not it.is_mastered and it.next_review_at]
        return min(dates) if dates else None

    # --- store observation ---
    def attach(self, coalescer: ChangeCoalescer) -> None:
        """Refresh through `coalescer` whenever the store reports a change."""

        self.close()
        self._coalescer = coalescer
        self._unsubscribe = self._store.subscribe(coalescer.notify)

    def on_coalesced_change(self) -> None:
        """Coalescer callback: refresh unless suppressed."""

        if self.suppressed:
            logger.debug("repository_refresh_skipped", reason="suppressed")
            return
        self.refresh()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._coalescer is not None:
            self._coalescer.cancel()
            self._coalescer = None
