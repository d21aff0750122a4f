"""
Goal preferences service.
- get_preferences(user_id)
- set_preferences(user_id, ...)
- today_for(user_id): the reader's calendar day, resolved in their timezone
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from bookstreak.core.config import settings
from bookstreak.core.database import get_db_session
from bookstreak.core.errors import NotFoundError, ValidationError
from bookstreak.core.logging import log_event
from bookstreak.features.streaks.persistence import StreakPersistence
from bookstreak.models.streak import GoalPreferences


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}")


def get_preferences(user_id: str) -> GoalPreferences:
    with get_db_session() as session:
        prefs = StreakPersistence.get_goal(session, user_id)
    if prefs is None:
        raise NotFoundError("Goal preferences are not configured")
    return prefs


def set_preferences(
    user_id: str,
    *,
    daily_page_goal: Optional[int] = None,
    freeze_allowance: Optional[int] = None,
    timezone_name: Optional[str] = None,
) -> GoalPreferences:
    """Create or update preferences; unset fields keep their stored (or default) value."""
    if daily_page_goal is not None and daily_page_goal < 1:
        raise ValidationError("daily_page_goal must be positive")
    if freeze_allowance is not None and freeze_allowance < 0:
        raise ValidationError("freeze_allowance must not be negative")
    if timezone_name is not None:
        _zone(timezone_name)

    with get_db_session() as session:
        current = StreakPersistence.get_goal(session, user_id)
        prefs = GoalPreferences(
            user_id=user_id,
            daily_page_goal=daily_page_goal
            or (current.daily_page_goal if current else settings.DEFAULT_DAILY_PAGE_GOAL),
            freeze_allowance=freeze_allowance
            if freeze_allowance is not None
            else (current.freeze_allowance if current else settings.DEFAULT_FREEZE_ALLOWANCE),
            timezone=timezone_name or (current.timezone if current else "UTC"),
        )
        StreakPersistence.upsert_goal(session, prefs)

    log_event(
        "info",
        "goals.preferences.saved",
        user_id=user_id,
        event_type="goals",
        extra=prefs.to_dict(),
    )
    return prefs


def local_today(timezone_name: str, now: Optional[datetime] = None) -> date:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(_zone(timezone_name)).date()


def today_for(user_id: str, now: Optional[datetime] = None) -> date:
    """Resolve the reader's current day once, at the request boundary."""
    with get_db_session() as session:
        prefs = StreakPersistence.get_goal(session, user_id)
    return local_today(prefs.timezone if prefs else "UTC", now)
