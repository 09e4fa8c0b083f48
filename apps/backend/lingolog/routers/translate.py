from __future__ import annotations

import anyio
from fastapi import APIRouter, Depends

from ..models.translation import Language, TranslateRequest, TranslateResponse
from ..session import LingoLogSession
from . import get_session

router = APIRouter(tags=["translate"])


@router.post("", response_model=TranslateResponse)
async def translate_text(
    req: TranslateRequest, session: LingoLogSession = Depends(get_session)
) -> TranslateResponse:
    """翻訳プロバイダ経由で訳語の候補を得る（保存はしない）。"""

    text = await anyio.to_thread.run_sync(
        session.translator.translate, req.text, req.source, req.target
    )
    return TranslateResponse(text=text, source=req.source, target=req.target)


@router.get("/languages", response_model=list[Language])
async def list_translation_languages(
    session: LingoLogSession = Depends(get_session),
) -> list[Language]:
    return await anyio.to_thread.run_sync(session.translator.list_languages)
