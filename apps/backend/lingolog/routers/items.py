from __future__ import annotations

from functools import partial

import anyio  # オフロード用
from fastapi import APIRouter, Depends, Query

from ..errors import NotFoundError
from ..models.item import (
    ItemsBulkDeleteRequest,
    ItemsBulkDeleteResponse,
    ReviewItem,
    ReviewItemCreateRequest,
    ReviewItemListResponse,
    ReviewItemUpdateRequest,
)
from ..session import LingoLogSession
from . import get_session

router = APIRouter(tags=["items"])


@router.get("", response_model=ReviewItemListResponse)
async def list_items(
    language: str | None = Query(default=None, description="言語タグで絞り込み（未指定は全件）"),
    q: str | None = Query(default=None, max_length=200, description="見出し語・訳語・メモの部分一致"),
    session: LingoLogSession = Depends(get_session),
) -> ReviewItemListResponse:
    """登録済みの単語を新しい順に返す。"""

    found = session.repository.search(q, language)
    return ReviewItemListResponse(items=found, total=len(found))


@router.get("/languages")
async def list_languages(session: LingoLogSession = Depends(get_session)) -> dict[str, list[str]]:
    return {"languages": session.repository.available_languages()}


@router.post("", response_model=ReviewItem, status_code=201)
async def create_item(
    req: ReviewItemCreateRequest, session: LingoLogSession = Depends(get_session)
) -> ReviewItem:
    """単語を追加する。追加直後から出題対象になる。"""

    # anyio.to_thread.run_sync はキーワード引数を転送しないため partial で包む
    return await anyio.to_thread.run_sync(
        partial(
            session.service.add_item,
            req.term,
            translation=req.translation,
            language=req.language,
            note=req.note,
        )
    )


@router.get("/{item_id}", response_model=ReviewItem)
async def get_item(item_id: str, session: LingoLogSession = Depends(get_session)) -> ReviewItem:
    return session.repository.get(item_id)


@router.patch("/{item_id}", response_model=ReviewItem)
async def update_item(
    item_id: str,
    req: ReviewItemUpdateRequest,
    session: LingoLogSession = Depends(get_session),
) -> ReviewItem:
    """見出し語・訳語・メモを編集する。習熟度や次回出題日時は変更できない。"""

    updated = await anyio.to_thread.run_sync(
        partial(
            session.service.edit_item,
            item_id,
            term=req.term,
            translation=req.translation,
            note=req.note,
        )
    )
    if updated is None:
        raise NotFoundError(item_id)
    return updated


@router.post("/delete", response_model=ItemsBulkDeleteResponse)
async def bulk_delete_items(
    req: ItemsBulkDeleteRequest, session: LingoLogSession = Depends(get_session)
) -> ItemsBulkDeleteResponse:
    """複数の単語をまとめて削除する。存在しない ID は not_found に入れて返す。"""

    outcome = await anyio.to_thread.run_sync(session.service.delete_items, req.ids)
    return ItemsBulkDeleteResponse(
        deleted=len(outcome.deleted),
        not_found=outcome.not_found,
        remaining=len(session.repository),
    )


@router.delete("/{item_id}")
async def delete_item(item_id: str, session: LingoLogSession = Depends(get_session)) -> dict[str, str]:
    """1件だけ削除する。一括削除と違い猶予時間の待機はしない。"""

    deleted = await anyio.to_thread.run_sync(session.service.delete_item, item_id)
    if not deleted:
        raise NotFoundError(item_id)
    return {"status": "deleted"}
