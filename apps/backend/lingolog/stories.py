"""Saved daily stories: today's story lookup, history and quiz results.

生成した物語は作成した暦日（学習履歴と同じローカル暦）に紐づけて保存する。
同じ言語で同じ日に再生成した場合は、新しい方が「今日の物語」になる。
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, tzinfo

from .clock import Clock, SystemClock
from .errors import NotFoundError, ValidationError
from .logging import logger
from .models.item import ReviewItem
from .models.story import DailyStory, StoryResponse
from .store.base import StoryStore


class StoryLibrary:
    """Persisted stories, newest first."""

    def __init__(
        self,
        store: StoryStore,
        clock: Clock | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._tz = tz

    def _local_day(self, moment: datetime | None) -> date:
        return (moment or self._clock.now()).astimezone(self._tz).date()

    def save(
        self,
        response: StoryResponse,
        language: str,
        words: Iterable[ReviewItem] = (),
        now: datetime | None = None,
    ) -> DailyStory:
        """Store a freshly generated story under today's date."""

        now = now or self._clock.now()
        story = DailyStory(
            day=self._local_day(now),
            created_at=now,
            language=language,
            title=response.title,
            content=response.story,
            word_ids=[it.id for it in words],
            questions=list(response.questions),
        )
        self._store.save_story(story)
        logger.info(
            "story_saved",
            story_id=story.id,
            language=language,
            day=story.day.isoformat(),
            words=len(story.word_ids),
        )
        return story

    def get(self, story_id: str) -> DailyStory:
        return self._store.get_story(story_id)

    def today(self, language: str, now: datetime | None = None) -> DailyStory | None:
        found = self._store.query_stories(language=language, day=self._local_day(now), limit=1)
        return found[0] if found else None

    def history(self, language: str | None = None, limit: int | None = None) -> list[DailyStory]:
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive")
        return self._store.query_stories(language=language or None, limit=limit)

    def available_languages(self) -> list[str]:
        return sorted({st.language for st in self._store.query_stories()})

    def mark_quiz_completed(self, story_id: str, score: int) -> DailyStory:
        """Record the quiz result. The score cannot exceed the number of questions."""

        def _mutate(current: DailyStory) -> DailyStory:
            if not 0 <= score <= len(current.questions):
                raise ValidationError(
                    f"score must be between 0 and {len(current.questions)}"
                )
            return current.model_copy(update={"quiz_completed": True, "quiz_score": score})

        updated = self._store.update_story(story_id, _mutate)
        logger.info("story_quiz_completed", story_id=story_id, score=score)
        return updated

    def delete(self, story_id: str) -> bool:
        try:
            self._store.delete_story(story_id)
        except NotFoundError:
            logger.info("story_delete_skipped", story_id=story_id, reason="not_found")
            return False
        logger.info("story_deleted", story_id=story_id)
        return True
