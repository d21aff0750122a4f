"""
Streak domain models.

Day-level only: every date here is a timezone-free calendar day that the API
boundary resolved in the reader's timezone. No direct DB concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Optional

DayStatus = Literal["qualifying", "frozen", "missed", "pending", "future", "no_data"]
AnomalyCode = Literal["invalid_state"]

MILESTONES = (7, 30, 100, 365)


@dataclass(frozen=True)
class DailyReadingLog:
    log_date: date
    pages_read: int
    book_id: Optional[str] = None
    duration_minutes: int = 0

    def to_dict(self) -> dict:
        return {
            "date": self.log_date.isoformat(),
            "pages_read": self.pages_read,
            "book_id": self.book_id,
            "duration_minutes": self.duration_minutes,
        }


@dataclass(frozen=True)
class FreezeConsumption:
    covered_date: date
    consumed_at: datetime


@dataclass(frozen=True)
class GoalPreferences:
    user_id: str
    daily_page_goal: int
    freeze_allowance: int
    timezone: str = "UTC"

    def to_dict(self) -> dict:
        return {
            "daily_page_goal": self.daily_page_goal,
            "freeze_allowance": self.freeze_allowance,
            "timezone": self.timezone,
        }


@dataclass(frozen=True)
class StreakAnomaly:
    """A stored row that was excluded from a computation."""

    log_date: date
    code: AnomalyCode
    message: str

    def to_dict(self) -> dict:
        return {"date": self.log_date.isoformat(), "code": self.code, "message": self.message}


@dataclass
class StreakComputation:
    """
    Result of one pure recomputation.

    Attributes:
        current_streak: consecutive qualifying days ending at the anchor
        longest_streak: longest qualifying run through as_of
        anchor: as_of when it qualifies, otherwise the day before
        gap_date: first non-qualifying day walking back from the anchor;
            the only day a freeze may cover
    """

    current_streak: int
    longest_streak: int
    anchor: date
    gap_date: date
    anomalies: list[StreakAnomaly] = field(default_factory=list)


@dataclass
class StreakCounters:
    """Persisted freeze bookkeeping plus the cached snapshot."""

    user_id: str
    created_on: date
    freezes_available: int = 0
    freezes_used: int = 0
    grants_applied: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_computed_date: Optional[date] = None


@dataclass
class StreakSnapshot:
    user_id: str
    current_streak: int
    longest_streak: int
    freezes_available: int
    freezes_used: int
    last_computed_date: date
    anomalies: list[StreakAnomaly] = field(default_factory=list)

    @property
    def next_milestone(self) -> Optional[int]:
        for milestone in MILESTONES:
            if self.current_streak < milestone:
                return milestone
        return None

    @property
    def next_action_hint(self) -> str:
        if self.current_streak == 0:
            return "Read today to start a new streak."
        milestone = self.next_milestone
        if milestone is None:
            return "Over a year of reading. Keep the pages turning."
        remaining = milestone - self.current_streak
        return f"Read today to keep it going. {remaining} day(s) to your {milestone}-day milestone."

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "freezes_available": self.freezes_available,
            "freezes_used": self.freezes_used,
            "last_computed_date": self.last_computed_date.isoformat(),
            "next_milestone": self.next_milestone,
            "next_action_hint": self.next_action_hint,
            "anomalies": [a.to_dict() for a in self.anomalies],
        }


@dataclass(frozen=True)
class CalendarDay:
    day: date
    status: DayStatus
    pages_read: Optional[int] = None

    def to_dict(self) -> dict:
        return {"date": self.day.isoformat(), "status": self.status, "pages_read": self.pages_read}
