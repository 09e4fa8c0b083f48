from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StoryQuizQuestion(BaseModel):
    """Multiple-choice comprehension question attached to a story."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    question: str
    options: list[str] = Field(min_length=2)
    # LLM は camelCase で返すため別名も受け付ける
    correct_index: int = Field(alias="correctIndex", ge=0)

    @model_validator(mode="after")
    def _check_index_in_range(self) -> "StoryQuizQuestion":
        if self.correct_index >= len(self.options):
            raise ValueError("correctIndex must point at one of the options")
        return self


class StoryResponse(BaseModel):
    """Story generated from a word list, with its quiz."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    story: str
    questions: list[StoryQuizQuestion] = Field(default_factory=list)


class StoryRequest(BaseModel):
    language: str = Field(min_length=1, max_length=16)
    language_name: str | None = Field(
        default=None, description="表示用の言語名（未指定なら言語タグをそのまま使用）"
    )
    max_words: int = Field(default=8, ge=1, le=30)
    regenerate: bool = Field(
        default=False, description="今日の物語が既にあっても新しく生成し直す"
    )


class DailyStory(BaseModel):
    """A generated story saved for the calendar day it was created on.

    1日1言語につき1本を想定し、同じ日に再生成した場合は新しい方が
    「今日の物語」として扱われる。`word_ids` は物語に使った単語の ID。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    day: date
    created_at: datetime
    language: str
    title: str
    content: str
    word_ids: list[str] = Field(default_factory=list)
    questions: list[StoryQuizQuestion] = Field(default_factory=list)
    quiz_completed: bool = False
    quiz_score: int = Field(default=0, ge=0)


class StoryQuizResultRequest(BaseModel):
    score: int = Field(ge=0, description="正解した設問数")


class StoryHistoryResponse(BaseModel):
    stories: list[DailyStory]
    total: int
