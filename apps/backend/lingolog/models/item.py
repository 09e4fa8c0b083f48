from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_MASTERY_LEVEL = 5


def new_item_id() -> str:
    return uuid.uuid4().hex


class ReviewItem(BaseModel):
    """A vocabulary entry together with its review schedule.

    学習対象の単語と、その復習スケジュール（習熟度・次回出題日時）を保持する。
    `mastery_level` と `next_review_at` はスケジューラからのみ同時に更新され、
    `is_mastered` は常に `mastery_level >= 5` と一致する。
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "id": "3f0c2a9e6f1b4f7c9a0d1e2f3a4b5c6d",
                    "term": "converge",
                    "translation": "収束する",
                    "language": "ja",
                    "note": "from a paper on distributed consensus",
                    "created_at": "2024-01-15T09:00:00+00:00",
                    "last_reviewed_at": None,
                    "review_count": 0,
                    "mastery_level": 0,
                    "is_mastered": False,
                    "next_review_at": "2024-01-15T09:00:00+00:00",
                }
            ]
        },
    )

    id: str = Field(default_factory=new_item_id)
    term: str = Field(min_length=1)
    translation: str = ""
    language: str = ""
    note: str | None = None
    created_at: datetime
    last_reviewed_at: datetime | None = None
    review_count: int = Field(default=0, ge=0)
    mastery_level: int = Field(default=0, ge=0, le=MAX_MASTERY_LEVEL)
    is_mastered: bool = False
    next_review_at: datetime | None = None
    # 論理削除の印（ストアが墓標として返すことがある）
    deleted_at: datetime | None = Field(default=None, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _derive_is_mastered(cls, data: object) -> object:
        """Keep `is_mastered` in lockstep with `mastery_level` on every load."""

        if not isinstance(data, dict):
            return data
        try:
            level = int(data.get("mastery_level", 0))
        except (TypeError, ValueError):
            # 型エラーはフィールド検証に任せる
            return data
        data = dict(data)
        # 入力に is_mastered があっても習熟度から導出した値で上書きする
        data["is_mastered"] = level >= MAX_MASTERY_LEVEL
        return data

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_due(self, at: datetime) -> bool:
        """Return True when the item should be quizzed at `at`."""
        if self.next_review_at is None:
            return True
        return at >= self.next_review_at

    @classmethod
    def new(
        cls,
        *,
        term: str,
        translation: str = "",
        language: str = "",
        note: str | None = None,
        now: datetime,
    ) -> "ReviewItem":
        """Create a fresh, unreviewed item that is due immediately."""

        return cls(
            term=term,
            translation=translation,
            language=language,
            note=note,
            created_at=now,
            next_review_at=now,
        )


class ReviewItemCreateRequest(BaseModel):
    """Request model for adding a word.

    見出し語は必須。訳語は後から埋めてもよい。
    """

    term: str = Field(max_length=200, description="学習する語（必須）")
    translation: str = Field(default="", max_length=500)
    language: str = Field(default="", max_length=16, description="言語タグ（例: ja, es）")
    note: str | None = Field(default=None, max_length=2000)


class ReviewItemUpdateRequest(BaseModel):
    """Partial edit of the text fields. Scheduling fields cannot be edited."""

    model_config = ConfigDict(extra="forbid")

    term: str | None = Field(default=None, max_length=200)
    translation: str | None = Field(default=None, max_length=500)
    note: str | None = Field(default=None, max_length=2000)


class ReviewItemListResponse(BaseModel):
    items: list[ReviewItem]
    total: int


class ItemsBulkDeleteRequest(BaseModel):
    ids: list[str] = Field(min_length=1, description="削除対象の ID 一覧")


class ItemsBulkDeleteResponse(BaseModel):
    deleted: int
    not_found: list[str] = Field(default_factory=list)
    remaining: int
