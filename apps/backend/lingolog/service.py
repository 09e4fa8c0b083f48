"""Caller layer that ties the store, repository, scheduler and history together.

画面（HTTP ルータ）から呼ばれる操作をまとめる。ストアへの書き込みはここで
行い、成功した結果だけをリポジトリのミラーへ反映する。スケジュール計算は
`ScheduleEngine` に委ね、このモジュールでは日時の取得と永続化のみを扱う。
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from .clock import Clock, SystemClock
from .config import settings
from .errors import NotFoundError, StoreError, ValidationError
from .history import StudyHistory
from .logging import logger
from .models.item import ReviewItem
from .models.story import DailyStory, StoryResponse
from .models.study import AnswerResult, DashboardStats
from .providers.story import StoryProvider
from .repository import ReviewItemRepository
from .scheduler import ScheduleEngine, is_answer_correct
from .store.base import ReviewItemStore
from .stories import StoryLibrary


@dataclass
class BulkDeleteOutcome:
    deleted: list[str] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)


def _require_term(term: str | None) -> str:
    cleaned = (term or "").strip()
    if not cleaned:
        raise ValidationError("term must not be empty")
    return cleaned


class VocabularyService:
    """Add, edit, answer and delete review items with write-through mirroring."""

    def __init__(
        self,
        store: ReviewItemStore,
        repository: ReviewItemRepository,
        history: StudyHistory,
        *,
        engine: ScheduleEngine | None = None,
        clock: Clock | None = None,
        grace_period_seconds: float | None = None,
        stories: StoryLibrary | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._repository = repository
        self._history = history
        self._engine = engine or ScheduleEngine()
        self._clock: Clock = clock or SystemClock()
        self._grace = (
            settings.delete_grace_period_seconds
            if grace_period_seconds is None
            else float(grace_period_seconds)
        )
        self._stories = stories
        self._sleep = sleep

    @property
    def repository(self) -> ReviewItemRepository:
        return self._repository

    @property
    def history(self) -> StudyHistory:
        return self._history

    @property
    def stories(self) -> StoryLibrary:
        if self._stories is None:
            raise StoreError("story persistence is not configured for this service")
        return self._stories

    # --- items ---
    def add_item(
        self,
        term: str,
        translation: str = "",
        language: str = "",
        note: str | None = None,
    ) -> ReviewItem:
        """Create an unreviewed item that is due immediately."""

        item = ReviewItem.new(
            term=_require_term(term),
            translation=(translation or "").strip(),
            language=(language or "").strip(),
            note=note or None,
            now=self._clock.now(),
        )
        self._store.create(item)
        self._repository.replace(item)
        logger.info("item_added", item_id=item.id, language=item.language)
        return item

    def edit_item(
        self,
        item_id: str,
        *,
        term: str | None = None,
        translation: str | None = None,
        note: str | None = None,
    ) -> ReviewItem | None:
        """Edit the text fields of an item.

        Returns None when the item no longer exists (treated as a no-op).
        Scheduling fields are never touched here.
        """

        changes: dict[str, object] = {}
        if term is not None:
            changes["term"] = _require_term(term)
        if translation is not None:
            changes["translation"] = translation.strip()
        if note is not None:
            changes["note"] = note or None
        try:
            updated = self._store.update(item_id, lambda cur: cur.model_copy(update=changes))
        except NotFoundError:
            logger.info("item_edit_skipped", item_id=item_id, reason="not_found")
            return None
        self._repository.replace(updated)
        logger.info("item_edited", item_id=item_id, fields=sorted(changes))
        return updated

    # --- quiz ---
    def due_items(self) -> list[ReviewItem]:
        return self._repository.items_due(self._clock.now())

    def answer(self, item_id: str, submitted: str) -> AnswerResult | None:
        """Grade one typed answer, reschedule the item and record study activity.

        採点はストア上の最新の訳語に対して行い、スケジュール更新と同じ
        トランザクション内で適用する。正解した場合のみ学習日として記録する。
        """

        now = self._clock.now()
        graded: dict[str, object] = {}

        def _mutate(current: ReviewItem) -> ReviewItem:
            correct = is_answer_correct(submitted or "", current.translation)
            graded["correct"] = correct
            graded["expected"] = current.translation
            return self._engine.apply_outcome(current, correct, now)

        try:
            updated = self._store.update(item_id, _mutate)
        except NotFoundError:
            logger.info("item_answer_skipped", item_id=item_id, reason="not_found")
            return None
        self._repository.replace(updated)

        correct = bool(graded["correct"])
        if correct:
            self._history.record_session(now)
        logger.info(
            "item_answered",
            item_id=item_id,
            correct=correct,
            mastery_level=updated.mastery_level,
            next_review_at=updated.next_review_at.isoformat() if updated.next_review_at else None,
        )
        return AnswerResult(
            item=updated,
            correct=correct,
            expected=str(graded["expected"]),
            submitted=(submitted or "").strip(),
        )

    # --- deletion ---
    def delete_items(self, ids: Iterable[str]) -> BulkDeleteOutcome:
        """Delete several items without the list flickering back mid-way.

        手順: リフレッシュ抑止 → ミラーから先に除去 → ストアから削除 →
        猶予時間待機 → 抑止解除 → 再読込。削除中に例外が出ても抑止は必ず解除する。
        """

        targets = list(dict.fromkeys(ids))
        outcome = BulkDeleteOutcome()
        if not targets:
            return outcome

        self._repository.set_suppressed(True)
        completed = False
        try:
            self._repository.optimistic_remove(targets)
            for item_id in targets:
                try:
                    self._store.delete(item_id)
                except NotFoundError:
                    logger.info("item_delete_skipped", item_id=item_id, reason="not_found")
                    outcome.not_found.append(item_id)
                    continue
                outcome.deleted.append(item_id)
            if self._grace > 0:
                self._sleep(self._grace)
            completed = True
        finally:
            self._repository.set_suppressed(False)
            # 失敗時も再読込し、楽観的に消した生存行をミラーへ戻す
            try:
                self._repository.refresh()
            except StoreError:
                # 削除側の例外が送出中ならそちらを優先する（refresh 側でログ済み）
                if completed:
                    raise
        logger.info(
            "items_deleted",
            requested=len(targets),
            deleted=len(outcome.deleted),
            not_found=len(outcome.not_found),
        )
        return outcome

    def delete_item(self, item_id: str) -> bool:
        """Delete one item without the batch grace period.

        1件だけなら再出現のちらつきは起きないため抑止も待機もせず、
        ストアでの削除が成功した後にミラーから除く。
        """

        try:
            self._store.delete(item_id)
        except NotFoundError:
            logger.info("item_delete_skipped", item_id=item_id, reason="not_found")
            return False
        self._repository.optimistic_remove([item_id])
        logger.info("item_deleted", item_id=item_id)
        return True

    # --- dashboard ---
    def dashboard(self) -> DashboardStats:
        now = self._clock.now()
        items = self._repository.items
        return DashboardStats(
            total_items=len(items),
            mastered_items=sum(1 for it in items if it.is_mastered),
            due_items=len(self._repository.items_due(now)),
            current_streak=self._history.current_streak(now),
            next_review_at=self._repository.next_review_at(),
        )

    # --- story ---
    def pick_story_words(
        self,
        language: str,
        max_words: int,
        rng: random.Random | None = None,
    ) -> list[ReviewItem]:
        """Randomly choose vocabulary for a story in `language`.

        語彙が少なければ全件、多ければ `max_words` 件までを無作為に選ぶ。
        """

        candidates = [it for it in self._repository.items_for_language(language) if it.translation]
        if not candidates:
            raise ValidationError(f"no translated items for language {language!r}")
        return (rng or random).sample(candidates, min(len(candidates), max_words))

    def generate_story(
        self,
        provider: StoryProvider,
        language: str,
        language_name: str | None = None,
        max_words: int = 8,
    ) -> StoryResponse:
        words = self.pick_story_words(language, max_words)
        return self._request_story(provider, words, language, language_name)

    def daily_story(
        self,
        provider: StoryProvider,
        language: str,
        language_name: str | None = None,
        max_words: int = 8,
        *,
        regenerate: bool = False,
    ) -> DailyStory:
        """Return today's saved story for `language`, generating one when missing.

        今日の物語が既にあれば LLM を呼ばずにそれを返す。`regenerate=True` の
        ときは常に新しく生成して保存する。
        """

        library = self.stories
        now = self._clock.now()
        if not regenerate:
            existing = library.today(language, now)
            if existing is not None:
                logger.info("story_reused", story_id=existing.id, language=language)
                return existing
        words = self.pick_story_words(language, max_words)
        response = self._request_story(provider, words, language, language_name)
        return library.save(response, language, words, now)

    def _request_story(
        self,
        provider: StoryProvider,
        words: list[ReviewItem],
        language: str,
        language_name: str | None,
    ) -> StoryResponse:
        logger.info("story_requested", language=language, words=len(words))
        return provider.generate_story(words, language, language_name or language)
