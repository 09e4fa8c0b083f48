from __future__ import annotations

import anyio
from fastapi import APIRouter, Depends

from ..errors import NotFoundError
from ..models.item import ReviewItemListResponse
from ..models.study import AnswerRequest, AnswerResult
from ..session import LingoLogSession
from . import get_session

router = APIRouter(tags=["quiz"])


@router.get("/due", response_model=ReviewItemListResponse)
async def list_due_items(session: LingoLogSession = Depends(get_session)) -> ReviewItemListResponse:
    """出題対象（未習得かつ期限到来）の単語を、期限超過の大きい順に返す。"""

    due = session.service.due_items()
    return ReviewItemListResponse(items=due, total=len(due))


@router.post("/{item_id}/answer", response_model=AnswerResult)
async def answer_item(
    item_id: str,
    req: AnswerRequest,
    session: LingoLogSession = Depends(get_session),
) -> AnswerResult:
    """入力された訳語を採点し、習熟度と次回出題日時を更新する。"""

    result = await anyio.to_thread.run_sync(session.service.answer, item_id, req.answer)
    if result is None:
        raise NotFoundError(item_id)
    return result
