from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from .item import ReviewItem


class AnswerRequest(BaseModel):
    answer: str = Field(default="", max_length=500, description="利用者が入力した訳語")


class AnswerResult(BaseModel):
    """Outcome of one quiz answer.

    採点結果と、スケジューラ適用後の新しい状態をまとめて返す。
    """

    item: ReviewItem
    correct: bool
    expected: str
    submitted: str


class DashboardStats(BaseModel):
    total_items: int
    mastered_items: int
    due_items: int
    current_streak: int
    next_review_at: datetime | None = None


class StreakResponse(BaseModel):
    current_streak: int
    studied_today: bool


class HistoryDay(BaseModel):
    day: date
    studied: bool


class HistoryResponse(BaseModel):
    days: list[HistoryDay]
