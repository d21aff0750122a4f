"""
Daily reading log endpoints.

POST /v1/reading-logs          - add a reading session's pages to a day
PUT  /v1/reading-logs/{date}   - correct pages_read for a past day
GET  /v1/reading-logs          - list logs, newest first
"""

import datetime as dt
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from bookstreak.core.auth import get_current_user_id
from bookstreak.features.goals.service import today_for
from bookstreak.features.streaks.service import streak_service

router = APIRouter(prefix="/v1/reading-logs", tags=["reading-logs"])


class ReadingSessionRequest(BaseModel):
    pages_read: int = Field(..., ge=0)
    date: Optional[dt.date] = None
    book_id: Optional[str] = Field(None, min_length=1, max_length=100)
    duration_minutes: int = Field(0, ge=0)


class LogUpdateRequest(BaseModel):
    pages_read: int = Field(..., ge=0)


@router.post("", status_code=201)
def record_reading(payload: ReadingSessionRequest, user_id: str = Depends(get_current_user_id)):
    log, snapshot = streak_service.record_reading(
        user_id,
        payload.pages_read,
        today_for(user_id),
        log_date=payload.date,
        book_id=payload.book_id,
        duration_minutes=payload.duration_minutes,
    )
    return {"data": {"log": log.to_dict(), "streak": snapshot.to_dict() if snapshot else None}}


@router.put("/{log_date}")
def update_log(log_date: date, payload: LogUpdateRequest, user_id: str = Depends(get_current_user_id)):
    log = streak_service.update_log(user_id, log_date, payload.pages_read, today_for(user_id))
    return {"data": log.to_dict()}


@router.get("")
def list_logs(
    user_id: str = Depends(get_current_user_id),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
):
    logs = streak_service.list_logs(user_id, from_date, to_date)
    return {"data": [log.to_dict() for log in logs]}
