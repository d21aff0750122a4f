"""
Streak API Endpoints

GET  /v1/streaks           - current/longest streak and freeze counters
GET  /v1/streaks/calendar  - per-day status for a date range
POST /v1/streaks/freeze    - spend a freeze on the gap before the current streak
"""

import datetime as dt
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from bookstreak.core.auth import get_current_user_id
from bookstreak.features.goals.service import today_for
from bookstreak.features.streaks.service import streak_service

router = APIRouter(prefix="/v1/streaks", tags=["streaks"])


class UseFreezeRequest(BaseModel):
    date: dt.date


@router.get("")
def get_streak(user_id: str = Depends(get_current_user_id)):
    """
    Return the recomputed streak snapshot.

    Returns:
        {
            "data": {
                "user_id": "...",
                "current_streak": 7,
                "longest_streak": 12,
                "freezes_available": 1,
                "freezes_used": 2,
                "last_computed_date": "2025-03-07",
                "next_milestone": 30,
                "next_action_hint": "...",
                "anomalies": []
            }
        }
    """
    snapshot = streak_service.get_streak(user_id, today_for(user_id))
    return {"data": snapshot.to_dict()}


@router.get("/calendar")
def get_calendar(
    user_id: str = Depends(get_current_user_id),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
):
    """
    Per-day status; defaults to the last 30 days ending today.

    Statuses: qualifying, frozen, missed, no_data, future, and pending for
    today while it has not met the goal yet (today never counts as missed).
    """
    today = today_for(user_id)
    end = to_date or today
    start = from_date or end - timedelta(days=29)
    days = streak_service.get_calendar(user_id, start, end, today)
    return {"data": {"from_date": start.isoformat(), "to_date": end.isoformat(), "days": [d.to_dict() for d in days]}}


@router.post("/freeze")
def use_freeze(payload: UseFreezeRequest, user_id: str = Depends(get_current_user_id)):
    snapshot = streak_service.use_freeze(user_id, payload.date, today_for(user_id))
    return {"data": snapshot.to_dict(), "message": f"Freeze applied to {payload.date.isoformat()}"}
