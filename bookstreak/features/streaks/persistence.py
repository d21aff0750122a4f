"""
bookstreak/features/streaks/persistence.py

SQL persistence for logs, goal preferences, freeze events and streak counters.

Every method takes the caller's Session so a service operation can run its
reads and writes in a single transaction.
"""

import logging
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookstreak.core.database import (
    daily_reading_logs,
    freeze_consumptions,
    goal_preferences,
    reading_streaks,
)
from bookstreak.models.streak import (
    DailyReadingLog,
    FreezeConsumption,
    GoalPreferences,
    StreakCounters,
)

logger = logging.getLogger("bookstreak")


class StreakPersistence:
    """Row-level access for the streak feature."""

    # Goal preferences -------------------------------------------------

    @staticmethod
    def get_goal(session: Session, user_id: str) -> Optional[GoalPreferences]:
        row = session.execute(
            select(goal_preferences).where(goal_preferences.c.user_id == user_id)
        ).first()
        if not row:
            return None
        return GoalPreferences(
            user_id=row.user_id,
            daily_page_goal=row.daily_page_goal,
            freeze_allowance=row.freeze_allowance,
            timezone=row.timezone,
        )

    @staticmethod
    def upsert_goal(session: Session, prefs: GoalPreferences) -> None:
        values = {
            "daily_page_goal": prefs.daily_page_goal,
            "freeze_allowance": prefs.freeze_allowance,
            "timezone": prefs.timezone,
            "updated_at": datetime.now(timezone.utc),
        }
        result = session.execute(
            update(goal_preferences).where(goal_preferences.c.user_id == prefs.user_id).values(**values)
        )
        if result.rowcount == 0:
            session.execute(insert(goal_preferences).values(user_id=prefs.user_id, **values))

    # Daily logs -------------------------------------------------------

    @staticmethod
    def list_logs(
        session: Session,
        user_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        descending: bool = False,
    ) -> List[DailyReadingLog]:
        query = select(daily_reading_logs).where(daily_reading_logs.c.user_id == user_id)
        if from_date is not None:
            query = query.where(daily_reading_logs.c.log_date >= from_date)
        if to_date is not None:
            query = query.where(daily_reading_logs.c.log_date <= to_date)
        order = daily_reading_logs.c.log_date.desc() if descending else daily_reading_logs.c.log_date
        rows = session.execute(query.order_by(order)).fetchall()
        return [
            DailyReadingLog(
                log_date=row.log_date,
                pages_read=row.pages_read,
                book_id=row.book_id,
                duration_minutes=row.duration_minutes,
            )
            for row in rows
        ]

    @staticmethod
    def get_log(session: Session, user_id: str, log_date: date) -> Optional[DailyReadingLog]:
        row = session.execute(
            select(daily_reading_logs).where(
                and_(daily_reading_logs.c.user_id == user_id, daily_reading_logs.c.log_date == log_date)
            )
        ).first()
        if not row:
            return None
        return DailyReadingLog(
            log_date=row.log_date,
            pages_read=row.pages_read,
            book_id=row.book_id,
            duration_minutes=row.duration_minutes,
        )

    @staticmethod
    def save_log(session: Session, user_id: str, log: DailyReadingLog, *, exists: bool) -> None:
        now = datetime.now(timezone.utc)
        values = {
            "pages_read": log.pages_read,
            "duration_minutes": log.duration_minutes,
            "book_id": log.book_id,
            "updated_at": now,
        }
        if exists:
            session.execute(
                update(daily_reading_logs)
                .where(
                    and_(
                        daily_reading_logs.c.user_id == user_id,
                        daily_reading_logs.c.log_date == log.log_date,
                    )
                )
                .values(**values)
            )
        else:
            session.execute(
                insert(daily_reading_logs).values(
                    user_id=user_id, log_date=log.log_date, created_at=now, **values
                )
            )

    # Freeze events ----------------------------------------------------

    @staticmethod
    def list_freezes(session: Session, user_id: str) -> List[FreezeConsumption]:
        rows = session.execute(
            select(freeze_consumptions)
            .where(freeze_consumptions.c.user_id == user_id)
            .order_by(freeze_consumptions.c.covered_date)
        ).fetchall()
        return [FreezeConsumption(covered_date=row.covered_date, consumed_at=row.consumed_at) for row in rows]

    @staticmethod
    def insert_freeze(session: Session, user_id: str, covered_date: date, consumed_at: datetime) -> None:
        """Raises IntegrityError if the day is already frozen."""
        session.execute(
            insert(freeze_consumptions).values(
                user_id=user_id, covered_date=covered_date, consumed_at=consumed_at
            )
        )

    # Streak counters --------------------------------------------------

    @staticmethod
    def get_counters(session: Session, user_id: str, *, for_update: bool = False) -> Optional[StreakCounters]:
        query = select(reading_streaks).where(reading_streaks.c.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        row = session.execute(query).first()
        if not row:
            return None
        return StreakCounters(
            user_id=row.user_id,
            created_on=row.created_on,
            freezes_available=row.freezes_available,
            freezes_used=row.freezes_used,
            grants_applied=row.grants_applied,
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            last_computed_date=row.last_computed_date,
        )

    @staticmethod
    def create_counters(session: Session, user_id: str, created_on: date) -> None:
        """
        Insert the counters row unless another transaction already did.

        Two first requests for one reader can both miss the row (FOR UPDATE
        locks nothing that does not exist yet); the loser's insert becomes a no-op.
        """
        values = {"user_id": user_id, "created_on": created_on, "updated_at": datetime.now(timezone.utc)}
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            session.execute(pg_insert(reading_streaks).values(**values).on_conflict_do_nothing(index_elements=["user_id"]))
        elif dialect == "sqlite":
            session.execute(sqlite_insert(reading_streaks).values(**values).on_conflict_do_nothing(index_elements=["user_id"]))
        else:
            try:
                with session.begin_nested():
                    session.execute(insert(reading_streaks).values(**values))
            except IntegrityError:
                logger.debug(f"reading_streaks row for {user_id} created concurrently")

    @staticmethod
    def consume_freeze(session: Session, user_id: str) -> bool:
        """Atomically spend one freeze. Returns False when none is left."""
        result = session.execute(
            update(reading_streaks)
            .where(and_(reading_streaks.c.user_id == user_id, reading_streaks.c.freezes_available > 0))
            .values(
                freezes_available=reading_streaks.c.freezes_available - 1,
                freezes_used=reading_streaks.c.freezes_used + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        return result.rowcount == 1

    @staticmethod
    def apply_grants(session: Session, user_id: str, freezes_available: int, grants_applied: int) -> None:
        session.execute(
            update(reading_streaks)
            .where(reading_streaks.c.user_id == user_id)
            .values(
                freezes_available=freezes_available,
                grants_applied=grants_applied,
                updated_at=datetime.now(timezone.utc),
            )
        )

    @staticmethod
    def cache_snapshot(
        session: Session, user_id: str, current_streak: int, longest_streak: int, computed_for: date
    ) -> None:
        session.execute(
            update(reading_streaks)
            .where(reading_streaks.c.user_id == user_id)
            .values(
                current_streak=current_streak,
                longest_streak=longest_streak,
                last_computed_date=computed_for,
                updated_at=datetime.now(timezone.utc),
            )
        )
