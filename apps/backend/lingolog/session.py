"""Per-process wiring of the store, repository, coalescer, history, stories and service.

コンポーネントはシングルトンにせず、ここで1組だけ組み立てて呼び出し側
（FastAPI アプリやテスト）へ渡す。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo

from .clock import Clock, SystemClock
from .coalescer import ChangeCoalescer
from .config import settings
from .history import StudyHistory
from .logging import logger
from .providers import get_story_provider, get_translation_provider
from .providers.story import StoryProvider
from .providers.translation import TranslationProvider
from .repository import ReviewItemRepository
from .scheduler import ScheduleEngine
from .service import VocabularyService
from .store import ReviewItemStore, create_store
from .stories import StoryLibrary


@dataclass
class LingoLogSession:
    store: ReviewItemStore
    repository: ReviewItemRepository
    coalescer: ChangeCoalescer
    history: StudyHistory
    stories: StoryLibrary
    service: VocabularyService
    translator: TranslationProvider
    story_provider: StoryProvider
    clock: Clock

    def close(self) -> None:
        self.coalescer.close()
        self.repository.close()
        self.store.close()
        logger.info("session_closed", store=type(self.store).__name__)


def build_session(
    *,
    db_path: str | None = None,
    store: ReviewItemStore | None = None,
    clock: Clock | None = None,
    engine: ScheduleEngine | None = None,
    translator: TranslationProvider | None = None,
    story_provider: StoryProvider | None = None,
    debounce_seconds: float | None = None,
    grace_period_seconds: float | None = None,
    tz: tzinfo | None = None,
) -> LingoLogSession:
    """Build one session and load the initial snapshot.

    `tz` は学習日と物語の日付を切る暦のタイムゾーン（未指定はプロセスのローカル）。
    """

    clock = clock or SystemClock()
    store = store or create_store(db_path)
    repository = ReviewItemRepository(store, clock=clock)
    coalescer = ChangeCoalescer(
        repository.on_coalesced_change,
        window_seconds=(
            settings.refresh_debounce_seconds if debounce_seconds is None else debounce_seconds
        ),
        name="review_items",
    )
    repository.attach(coalescer)
    history = StudyHistory(store, clock=clock, tz=tz)
    stories = StoryLibrary(store, clock=clock, tz=tz)
    service = VocabularyService(
        store,
        repository,
        history,
        engine=engine,
        clock=clock,
        grace_period_seconds=grace_period_seconds,
        stories=stories,
    )
    repository.refresh()
    logger.info("session_ready", store=type(store).__name__, items=len(repository))
    return LingoLogSession(
        store=store,
        repository=repository,
        coalescer=coalescer,
        history=history,
        stories=stories,
        service=service,
        translator=translator or get_translation_provider(),
        story_provider=story_provider or get_story_provider(),
        clock=clock,
    )
