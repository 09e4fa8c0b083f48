from __future__ import annotations

from functools import partial

import anyio
from fastapi import APIRouter, Depends, Query

from ..errors import NotFoundError
from ..models.story import (
    DailyStory,
    StoryHistoryResponse,
    StoryQuizResultRequest,
    StoryRequest,
)
from ..session import LingoLogSession
from . import get_session

router = APIRouter(tags=["story"])


@router.post("", response_model=DailyStory)
async def create_story(
    req: StoryRequest, session: LingoLogSession = Depends(get_session)
) -> DailyStory:
    """指定言語の今日の物語を返す。未生成なら単語から生成して保存する。

    LLM 呼び出しはブロッキングなのでワーカースレッドへ逃がす。
    """

    return await anyio.to_thread.run_sync(
        partial(
            session.service.daily_story,
            session.story_provider,
            req.language,
            language_name=req.language_name,
            max_words=req.max_words,
            regenerate=req.regenerate,
        )
    )


@router.get("/today", response_model=DailyStory)
async def get_today_story(
    language: str = Query(min_length=1, max_length=16),
    session: LingoLogSession = Depends(get_session),
) -> DailyStory:
    story = await anyio.to_thread.run_sync(session.stories.today, language)
    if story is None:
        raise NotFoundError(language, kind="today's story")
    return story


@router.get("/history", response_model=StoryHistoryResponse)
async def list_story_history(
    language: str | None = Query(default=None, description="言語タグで絞り込み（未指定は全件）"),
    limit: int | None = Query(default=None, ge=1, le=200),
    session: LingoLogSession = Depends(get_session),
) -> StoryHistoryResponse:
    """保存済みの物語を新しい順に返す。"""

    stories = await anyio.to_thread.run_sync(session.stories.history, language, limit)
    return StoryHistoryResponse(stories=stories, total=len(stories))


@router.get("/languages")
async def list_story_languages(
    session: LingoLogSession = Depends(get_session),
) -> dict[str, list[str]]:
    return {"languages": await anyio.to_thread.run_sync(session.stories.available_languages)}


@router.get("/{story_id}", response_model=DailyStory)
async def get_story(story_id: str, session: LingoLogSession = Depends(get_session)) -> DailyStory:
    return await anyio.to_thread.run_sync(session.stories.get, story_id)


@router.post("/{story_id}/quiz", response_model=DailyStory)
async def complete_story_quiz(
    story_id: str,
    req: StoryQuizResultRequest,
    session: LingoLogSession = Depends(get_session),
) -> DailyStory:
    """読解クイズの結果（正解数）を記録する。"""

    return await anyio.to_thread.run_sync(
        session.stories.mark_quiz_completed, story_id, req.score
    )


@router.delete("/{story_id}")
async def delete_story(story_id: str, session: LingoLogSession = Depends(get_session)) -> dict[str, str]:
    deleted = await anyio.to_thread.run_sync(session.stories.delete, story_id)
    if not deleted:
        raise NotFoundError(story_id, kind="story")
    return {"status": "deleted"}
