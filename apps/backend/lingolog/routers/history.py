from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..models.study import DashboardStats, HistoryDay, HistoryResponse, StreakResponse
from ..session import LingoLogSession
from . import get_session

router = APIRouter(tags=["history"])


@router.get("/history/streak", response_model=StreakResponse)
async def get_streak(session: LingoLogSession = Depends(get_session)) -> StreakResponse:
    now = session.clock.now()
    return StreakResponse(
        current_streak=session.history.current_streak(now),
        studied_today=session.history.has_studied(now),
    )


@router.get("/history/recent", response_model=HistoryResponse)
async def get_recent_history(
    days: int = Query(default=7, ge=1, le=366, description="今日を含めて遡る日数"),
    session: LingoLogSession = Depends(get_session),
) -> HistoryResponse:
    """直近の学習カレンダー（古い日付から順）を返す。"""

    history = session.history
    return HistoryResponse(
        days=[
            HistoryDay(day=day, studied=history.has_studied(day))
            for day in history.recent_history(days, session.clock.now())
        ]
    )


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(session: LingoLogSession = Depends(get_session)) -> DashboardStats:
    return session.service.dashboard()
