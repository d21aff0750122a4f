from __future__ import annotations

import threading
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookstreak.core.config import settings
from bookstreak.core.database import get_db_session
from bookstreak.core.errors import (
    AppError,
    DuplicateFreezeError,
    InsufficientFreezesError,
    NotFoundError,
    ValidationError,
)
from bookstreak.core.logging import log_event
from bookstreak.features.streaks.engine import StreakEngine
from bookstreak.features.streaks.persistence import StreakPersistence
from bookstreak.models.streak import (
    CalendarDay,
    DailyReadingLog,
    GoalPreferences,
    StreakComputation,
    StreakCounters,
    StreakSnapshot,
)


class UserLocks:
    """One lock per user; writers for the same user never interleave."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def for_user(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock


class StreakService:
    """Streak reads, freeze consumption and log writes over stored facts.

    Every snapshot is recomputed from logs + freeze events. The cached row in
    reading_streaks is written for display but never read back as an input.
    """

    def __init__(self, grant_period_days: Optional[int] = None, locks: Optional[UserLocks] = None):
        self._grant_period_days = grant_period_days or settings.FREEZE_GRANT_PERIOD_DAYS
        self._locks = locks or UserLocks()

    # Reads ------------------------------------------------------------
    def get_streak(self, user_id: str, today: date) -> StreakSnapshot:
        with self._locks.for_user(user_id), get_db_session() as session:
            prefs = self._require_goal(session, user_id)
            counters = self._replenish(session, self._ensure_counters(session, user_id, today), prefs, today)
            logs = StreakPersistence.list_logs(session, user_id)
            frozen = {f.covered_date for f in StreakPersistence.list_freezes(session, user_id)}
            computation = StreakEngine.compute(logs, frozen, prefs.daily_page_goal, today)
            StreakPersistence.cache_snapshot(
                session, user_id, computation.current_streak, computation.longest_streak, today
            )
        self._report_anomalies(user_id, computation)
        return self._snapshot(user_id, computation, counters, today)

    def get_calendar(self, user_id: str, from_date: date, to_date: date, today: date) -> List[CalendarDay]:
        if from_date > to_date:
            raise ValidationError("from_date must not be after to_date")
        span = (to_date - from_date).days + 1
        if span > settings.MAX_CALENDAR_DAYS:
            raise ValidationError(f"Calendar range is limited to {settings.MAX_CALENDAR_DAYS} days")

        with get_db_session() as session:
            prefs = self._require_goal(session, user_id)
            logs = StreakPersistence.list_logs(session, user_id, to_date=to_date)
            frozen = [f.covered_date for f in StreakPersistence.list_freezes(session, user_id)]
        return StreakEngine.project_calendar(logs, frozen, prefs.daily_page_goal, from_date, to_date, today)

    def list_logs(
        self, user_id: str, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> List[DailyReadingLog]:
        if from_date and to_date and from_date > to_date:
            raise ValidationError("from_date must not be after to_date")
        with get_db_session() as session:
            return StreakPersistence.list_logs(session, user_id, from_date, to_date, descending=True)

    # Freeze consumption -----------------------------------------------
    def use_freeze(self, user_id: str, target_date: date, today: date) -> StreakSnapshot:
        """
        Spend one freeze to cover target_date.

        All preconditions are checked and the spend is applied under the
        user's lock inside one transaction; any failure rolls back.

        Raises:
            NotFoundError, NotEligibleError, AlreadyQualifyingError,
            DuplicateFreezeError, InsufficientFreezesError
        """
        try:
            with self._locks.for_user(user_id), get_db_session() as session:
                prefs = self._require_goal(session, user_id)
                counters = self._ensure_counters(session, user_id, today, for_update=True)
                counters = self._replenish(session, counters, prefs, today)
                logs = StreakPersistence.list_logs(session, user_id)
                frozen = {f.covered_date for f in StreakPersistence.list_freezes(session, user_id)}

                StreakEngine.authorize_freeze(
                    target_date, today, logs, frozen, prefs.daily_page_goal, counters.freezes_available
                )

                if not StreakPersistence.consume_freeze(session, user_id):
                    raise InsufficientFreezesError("No freezes available")
                try:
                    StreakPersistence.insert_freeze(session, user_id, target_date, datetime.now(timezone.utc))
                except IntegrityError:
                    raise DuplicateFreezeError(f"{target_date.isoformat()} is already frozen")

                frozen.add(target_date)
                computation = StreakEngine.compute(logs, frozen, prefs.daily_page_goal, today)
                StreakPersistence.cache_snapshot(
                    session, user_id, computation.current_streak, computation.longest_streak, today
                )
                counters.freezes_available -= 1
                counters.freezes_used += 1
        except AppError as exc:
            log_event(
                "warning",
                "streak.freeze.rejected",
                user_id=user_id,
                event_type="streak.freeze",
                error_code=exc.code,
                extra={"covered_date": target_date.isoformat()},
            )
            raise

        log_event(
            "info",
            "streak.freeze.used",
            user_id=user_id,
            event_type="streak.freeze",
            extra={
                "covered_date": target_date.isoformat(),
                "current_streak": computation.current_streak,
                "freezes_available": counters.freezes_available,
            },
        )
        return self._snapshot(user_id, computation, counters, today)

    def grant_freezes(self, user_id: str, count: int, today: date) -> StreakCounters:
        """Add freezes outside the periodic policy, capped at the allowance."""
        if count < 1:
            raise ValidationError("count must be positive")
        with self._locks.for_user(user_id), get_db_session() as session:
            prefs = self._require_goal(session, user_id)
            counters = self._ensure_counters(session, user_id, today, for_update=True)
            available = max(counters.freezes_available, min(prefs.freeze_allowance, counters.freezes_available + count))
            StreakPersistence.apply_grants(session, user_id, available, counters.grants_applied)
            counters.freezes_available = available
        log_event(
            "info",
            "streak.freeze.granted",
            user_id=user_id,
            event_type="streak.freeze",
            extra={"freezes_available": available, "source": "manual"},
        )
        return counters

    # Log writes -------------------------------------------------------
    def record_reading(
        self,
        user_id: str,
        pages_read: int,
        today: date,
        *,
        log_date: Optional[date] = None,
        book_id: Optional[str] = None,
        duration_minutes: int = 0,
    ) -> Tuple[DailyReadingLog, Optional[StreakSnapshot]]:
        """Add a reading session's pages to the day's log (created if absent)."""
        day = log_date or today
        self._check_log_write(day, pages_read, today)

        with self._locks.for_user(user_id), get_db_session() as session:
            # Row lock on the counters serializes with use_freeze across processes
            self._ensure_counters(session, user_id, today, for_update=True)
            existing = StreakPersistence.get_log(session, user_id, day)
            log = DailyReadingLog(
                log_date=day,
                pages_read=(existing.pages_read if existing else 0) + pages_read,
                book_id=book_id or (existing.book_id if existing else None),
                duration_minutes=(existing.duration_minutes if existing else 0) + max(duration_minutes, 0),
            )
            StreakPersistence.save_log(session, user_id, log, exists=existing is not None)

        log_event(
            "info",
            "reading_log.recorded",
            user_id=user_id,
            event_type="reading_log",
            extra={"date": day.isoformat(), "pages_read": log.pages_read},
        )
        return log, self._snapshot_if_configured(user_id, today)

    def update_log(self, user_id: str, log_date: date, pages_read: int, today: date) -> DailyReadingLog:
        """Overwrite pages_read for an existing day; the next read reflects it."""
        self._check_log_write(log_date, pages_read, today)
        with self._locks.for_user(user_id), get_db_session() as session:
            self._ensure_counters(session, user_id, today, for_update=True)
            existing = StreakPersistence.get_log(session, user_id, log_date)
            if existing is None:
                raise NotFoundError(f"No reading log for {log_date.isoformat()}")
            log = DailyReadingLog(
                log_date=log_date,
                pages_read=pages_read,
                book_id=existing.book_id,
                duration_minutes=existing.duration_minutes,
            )
            StreakPersistence.save_log(session, user_id, log, exists=True)

        log_event(
            "info",
            "reading_log.updated",
            user_id=user_id,
            event_type="reading_log",
            extra={"date": log_date.isoformat(), "pages_read": pages_read},
        )
        return log

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _check_log_write(day: date, pages_read: int, today: date) -> None:
        if pages_read < 0:
            raise ValidationError("pages_read must not be negative")
        if day > today:
            raise ValidationError(f"Cannot log reading for a future day ({day.isoformat()})")

    @staticmethod
    def _require_goal(session: Session, user_id: str) -> GoalPreferences:
        prefs = StreakPersistence.get_goal(session, user_id)
        if prefs is None:
            raise NotFoundError("Goal preferences are not configured")
        return prefs

    @staticmethod
    def _ensure_counters(session: Session, user_id: str, today: date, *, for_update: bool = False) -> StreakCounters:
        counters = StreakPersistence.get_counters(session, user_id, for_update=for_update)
        if counters is None:
            StreakPersistence.create_counters(session, user_id, today)
            counters = StreakPersistence.get_counters(session, user_id, for_update=for_update)
        return counters

    def _replenish(
        self, session: Session, counters: StreakCounters, prefs: GoalPreferences, today: date
    ) -> StreakCounters:
        """Grant one freeze per elapsed period, each period exactly once, bank capped at the allowance."""
        periods = (today - counters.created_on).days // self._grant_period_days
        due = periods - counters.grants_applied
        if due <= 0:
            return counters

        available = counters.freezes_available
        if available < prefs.freeze_allowance:
            available = min(prefs.freeze_allowance, available + due)
        StreakPersistence.apply_grants(session, counters.user_id, available, periods)

        if available != counters.freezes_available:
            log_event(
                "info",
                "streak.freeze.granted",
                user_id=counters.user_id,
                event_type="streak.freeze",
                extra={"freezes_available": available, "source": "periodic"},
            )
        counters.freezes_available = available
        counters.grants_applied = periods
        return counters

    def _snapshot_if_configured(self, user_id: str, today: date) -> Optional[StreakSnapshot]:
        try:
            return self.get_streak(user_id, today)
        except NotFoundError:
            return None

    @staticmethod
    def _report_anomalies(user_id: str, computation: StreakComputation) -> None:
        for anomaly in computation.anomalies:
            log_event(
                "warning",
                "streak.log.invalid_state",
                user_id=user_id,
                event_type="streak.compute",
                error_code=anomaly.code,
                extra={"date": anomaly.log_date.isoformat(), "message": anomaly.message},
            )

    @staticmethod
    def _snapshot(
        user_id: str, computation: StreakComputation, counters: StreakCounters, today: date
    ) -> StreakSnapshot:
        return StreakSnapshot(
            user_id=user_id,
            current_streak=computation.current_streak,
            longest_streak=computation.longest_streak,
            freezes_available=counters.freezes_available,
            freezes_used=counters.freezes_used,
            last_computed_date=today,
            anomalies=list(computation.anomalies),
        )


# Singleton service used by routes
streak_service = StreakService()
