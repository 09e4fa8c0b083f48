import random
from datetime import UTC, date, timedelta

import pytest

from factories import T0, make_item
from lingolog.clock import FrozenClock
from lingolog.errors import StoreError, ValidationError
from lingolog.history import StudyHistory
from lingolog.models.story import StoryResponse
from lingolog.repository import ReviewItemRepository
from lingolog.service import VocabularyService
from lingolog.stories import StoryLibrary
from lingolog.store import InMemoryReviewItemStore


class _FakeStoryProvider:
    def __init__(self) -> None:
        self.calls: list[tuple[list, str, str]] = []

    def generate_story(self, items, language, language_name):
        self.calls.append((items, language, language_name))
        return StoryResponse(title="t", story="s", questions=[])


def _build(store=None, clock=None, sleep=None):
    store = store or InMemoryReviewItemStore()
    clock = clock or FrozenClock(T0)
    repository = ReviewItemRepository(store, clock=clock)
    history = StudyHistory(store, clock=clock, tz=UTC)
    service = VocabularyService(
        store,
        repository,
        history,
        clock=clock,
        grace_period_seconds=0.3,
        stories=StoryLibrary(store, clock=clock, tz=UTC),
        sleep=sleep or (lambda _seconds: None),
    )
    return service, store, repository, clock


def test_add_item_is_due_immediately_and_mirrored() -> None:
    service, store, repository, _ = _build()

    item = service.add_item("  hola ", translation="hello", language="es")

    assert item.term == "hola"
    assert item.next_review_at == T0
    assert item.mastery_level == 0
    assert store.get(item.id) == item
    assert [it.id for it in repository.items_due()] == [item.id]


@pytest.mark.parametrize("term", ["", "   ", "\n"])
def test_add_item_rejects_empty_term_before_store(term: str) -> None:
    service, store, repository, _ = _build()

    with pytest.raises(ValidationError):
        service.add_item(term, translation="x")

    assert store.query_all() == []
    assert len(repository) == 0


def test_correct_answer_reschedules_and_records_study_day() -> None:
    service, store, repository, clock = _build()
    item = service.add_item("hola", translation="hello", language="es")
    clock.advance(minutes=5)

    result = service.answer(item.id, "  HELLO ")

    assert result is not None
    assert result.correct is True
    assert result.expected == "hello"
    assert result.submitted == "HELLO"
    assert result.item.mastery_level == 1
    assert result.item.next_review_at == clock.now() + timedelta(days=1)
    assert store.get(item.id) == result.item
    assert repository.items_due() == []
    assert service.history.has_studied(date(2024, 1, 15))


def test_incorrect_answer_keeps_item_due_without_recording_study() -> None:
    service, store, repository, clock = _build()
    item = service.add_item("hola", translation="hello")

    result = service.answer(item.id, "goodbye")

    assert result is not None
    assert result.correct is False
    assert result.item.mastery_level == 0
    assert result.item.review_count == 1
    assert [it.id for it in repository.items_due()] == [item.id]
    assert service.history.studied_days() == frozenset()


def test_level_three_scenarios() -> None:
    store = InMemoryReviewItemStore()
    promoted = make_item("a", translation="x", mastery_level=3)
    demoted = make_item("b", translation="y", mastery_level=3)
    store.create(promoted)
    store.create(demoted)
    service, _, repository, clock = _build(store=store)
    repository.refresh()

    up = service.answer(promoted.id, "x")
    down = service.answer(demoted.id, "wrong")

    assert up.item.mastery_level == 4
    assert up.item.next_review_at == clock.now() + timedelta(days=14)
    assert down.item.mastery_level == 2
    assert down.item.next_review_at == clock.now()


def test_answer_and_edit_on_missing_item_are_noops() -> None:
    service, _, _, _ = _build()

    assert service.answer("missing", "x") is None
    assert service.edit_item("missing", translation="x") is None


def test_edit_item_updates_text_only() -> None:
    service, store, repository, _ = _build()
    item = service.add_item("hola", translation="")

    edited = service.edit_item(item.id, translation=" hello ", note="greeting")

    assert edited.translation == "hello"
    assert edited.note == "greeting"
    assert edited.next_review_at == item.next_review_at
    assert repository.get(item.id).translation == "hello"
    with pytest.raises(ValidationError):
        service.edit_item(item.id, term="  ")
    assert store.get(item.id).term == "hola"


def test_batch_delete_suppresses_refresh_until_grace_period_ends() -> None:
    observed: dict[str, object] = {}
    holder: dict[str, object] = {}

    def _sleep(seconds: float) -> None:
        repository = holder["repository"]
        observed["seconds"] = seconds
        observed["suppressed"] = repository.suppressed
        observed["visible"] = len(repository)
        # a coalesced change arriving mid-delete must not resurrect anything
        repository.on_coalesced_change()
        observed["visible_after_signal"] = len(repository)

    service, store, repository, _ = _build(sleep=_sleep)
    holder["repository"] = repository
    items = [service.add_item(f"word{i}", translation=str(i)) for i in range(5)]
    doomed = [items[0].id, items[2].id, items[4].id]

    outcome = service.delete_items(doomed)

    assert outcome.deleted == doomed
    assert outcome.not_found == []
    assert observed == {
        "seconds": 0.3,
        "suppressed": True,
        "visible": 2,
        "visible_after_signal": 2,
    }
    assert repository.suppressed is False
    assert {it.id for it in repository.items} == {items[1].id, items[3].id}
    assert {it.id for it in store.query_all()} == {items[1].id, items[3].id}


def test_batch_delete_reports_unknown_ids() -> None:
    service, _, repository, _ = _build()
    item = service.add_item("hola")

    outcome = service.delete_items([item.id, "ghost", item.id])

    assert outcome.deleted == [item.id]
    assert outcome.not_found == ["ghost"]
    assert len(repository) == 0
    assert service.delete_item("ghost") is False


def test_store_failure_during_delete_lifts_suppression() -> None:
    class _BrokenDeleteStore(InMemoryReviewItemStore):
        def delete(self, item_id: str) -> None:
            raise StoreError("database is locked")

    service, store, repository, _ = _build(store=_BrokenDeleteStore())
    item = service.add_item("hola")

    with pytest.raises(StoreError, match="database is locked"):
        service.delete_items([item.id])

    assert repository.suppressed is False
    # the row is still live in the store, so the mirror must show it again
    assert [it.id for it in store.query_all()] == [item.id]
    assert [it.id for it in repository.items] == [item.id]


def test_partial_batch_failure_restores_only_surviving_rows() -> None:
    class _FailSecondDeleteStore(InMemoryReviewItemStore):
        calls = 0

        def delete(self, item_id: str) -> None:
            self.calls += 1
            if self.calls == 2:
                raise StoreError("disk I/O error")
            super().delete(item_id)

    service, store, repository, _ = _build(store=_FailSecondDeleteStore())
    first = service.add_item("uno")
    second = service.add_item("dos")
    third = service.add_item("tres")

    with pytest.raises(StoreError):
        service.delete_items([first.id, second.id, third.id])

    assert {it.id for it in repository.items} == {second.id, third.id}
    assert {it.id for it in repository.items} == {it.id for it in store.query_all()}


def test_single_delete_skips_grace_period() -> None:
    slept: list[float] = []
    service, store, repository, _ = _build(sleep=slept.append)
    keep = service.add_item("uno")
    gone = service.add_item("dos")

    assert service.delete_item(gone.id) is True
    assert service.delete_item(gone.id) is False

    assert slept == []
    assert [it.id for it in repository.items] == [keep.id]
    assert [it.id for it in store.query_all()] == [keep.id]


def test_dashboard_summarises_repository_and_history() -> None:
    service, _, _, _ = _build()
    first = service.add_item("uno", translation="one")
    service.add_item("dos", translation="two")
    store_item = service.add_item("tres", translation="three")
    for _ in range(5):
        service.answer(store_item.id, "three")
    service.answer(first.id, "one")

    stats = service.dashboard()

    assert stats.total_items == 3
    assert stats.mastered_items == 1
    assert stats.due_items == 1
    assert stats.current_streak == 1
    assert stats.next_review_at == T0


def test_story_words_are_sampled_from_translated_items() -> None:
    service, _, _, _ = _build()
    for i in range(12):
        service.add_item(f"palabra{i}", translation=f"word{i}", language="es")
    service.add_item("sin", translation="", language="es")
    service.add_item("mot", translation="word", language="fr")

    words = service.pick_story_words("es", 8, rng=random.Random(0))

    assert len(words) == 8
    assert len({it.id for it in words}) == 8
    assert all(it.language == "es" and it.translation for it in words)


def test_story_requires_vocabulary_in_language() -> None:
    service, _, _, _ = _build()
    service.add_item("mot", translation="word", language="fr")

    with pytest.raises(ValidationError):
        service.generate_story(_FakeStoryProvider(), "es")


def test_generate_story_passes_language_name() -> None:
    service, _, _, _ = _build()
    service.add_item("hola", translation="hello", language="es")
    provider = _FakeStoryProvider()

    story = service.generate_story(provider, "es", language_name="Spanish")

    assert story.title == "t"
    items, language, language_name = provider.calls[0]
    assert [it.term for it in items] == ["hola"]
    assert (language, language_name) == ("es", "Spanish")


def test_daily_story_is_saved_and_reused_for_the_same_day() -> None:
    service, store, _, clock = _build()
    word = service.add_item("hola", translation="hello", language="es")
    provider = _FakeStoryProvider()

    first = service.daily_story(provider, "es", language_name="Spanish")
    clock.advance(hours=2)
    again = service.daily_story(provider, "es")

    assert again == first
    assert len(provider.calls) == 1
    assert first.day == date(2024, 1, 15)
    assert first.word_ids == [word.id]
    assert store.get_story(first.id) == first


def test_daily_story_regenerates_on_request_and_on_a_new_day() -> None:
    service, _, _, clock = _build()
    service.add_item("hola", translation="hello", language="es")
    provider = _FakeStoryProvider()

    first = service.daily_story(provider, "es")
    clock.advance(minutes=1)
    forced = service.daily_story(provider, "es", regenerate=True)
    clock.advance(days=1)
    tomorrow = service.daily_story(provider, "es")

    assert len(provider.calls) == 3
    assert len({first.id, forced.id, tomorrow.id}) == 3
    assert service.stories.today("es") == tomorrow
    assert [st.id for st in service.stories.history("es")] == [tomorrow.id, forced.id, first.id]


def test_daily_story_without_library_is_a_store_error() -> None:
    store = InMemoryReviewItemStore()
    clock = FrozenClock(T0)
    repository = ReviewItemRepository(store, clock=clock)
    service = VocabularyService(store, repository, StudyHistory(store, clock=clock), clock=clock)
    service.add_item("hola", translation="hello", language="es")

    with pytest.raises(StoreError):
        service.daily_story(_FakeStoryProvider(), "es")
