"""
Streak Engine

Pure, deterministic streak accounting from stored facts.
No clock reads, no I/O, no persisted running counters as inputs.

Qualification rule (shared by every computation and the calendar):
- a day qualifies if its log has pages_read >= daily_page_goal,
  or a freeze covers it
- a log below goal never qualifies on its own

Today is still in progress: it extends the streak once it qualifies but never
breaks it, so the backward walk starts at yesterday until then.
"""

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from bookstreak.core.errors import (
    AlreadyQualifyingError,
    DuplicateFreezeError,
    InsufficientFreezesError,
    InvalidStateError,
    NotEligibleError,
    ValidationError,
)
from bookstreak.models.streak import (
    CalendarDay,
    DailyReadingLog,
    DayStatus,
    StreakAnomaly,
    StreakComputation,
)

ONE_DAY = timedelta(days=1)


class StreakEngine:
    """Pure streak, freeze eligibility and calendar computations."""

    @staticmethod
    def index_logs(
        logs: Iterable[DailyReadingLog], as_of: date
    ) -> Tuple[Dict[date, DailyReadingLog], List[StreakAnomaly]]:
        """
        Key logs by day, excluding rows dated after as_of.

        A future-dated row means clock skew or a corrupted write. It is
        reported as an anomaly and left out instead of failing the read.
        """
        by_day: Dict[date, DailyReadingLog] = {}
        anomalies: List[StreakAnomaly] = []
        for log in logs:
            if log.log_date > as_of:
                anomalies.append(
                    StreakAnomaly(
                        log_date=log.log_date,
                        code=InvalidStateError.code,
                        message=f"log dated after {as_of.isoformat()} excluded",
                    )
                )
                continue
            by_day[log.log_date] = log
        return by_day, anomalies

    @staticmethod
    def log_qualifies(log: Optional[DailyReadingLog], goal: int) -> bool:
        return log is not None and log.pages_read >= goal

    @staticmethod
    def qualifying_days(
        logs_by_day: Dict[date, DailyReadingLog], frozen: Set[date], goal: int, as_of: date
    ) -> Set[date]:
        days = {d for d, log in logs_by_day.items() if log.pages_read >= goal}
        days.update(d for d in frozen if d <= as_of)
        return days

    @staticmethod
    def longest_run(days: Set[date]) -> int:
        longest = 0
        run = 0
        previous: Optional[date] = None
        for day in sorted(days):
            run = run + 1 if previous is not None and day - previous == ONE_DAY else 1
            longest = max(longest, run)
            previous = day
        return longest

    @staticmethod
    def compute(
        logs: Iterable[DailyReadingLog],
        frozen: Iterable[date],
        goal: int,
        as_of: date,
    ) -> StreakComputation:
        """
        Recompute current and longest streak as of a calendar day.

        Args:
            logs: full log history, any order
            frozen: days covered by freeze events
            goal: daily page goal (positive)
            as_of: the reader's current calendar day

        Returns:
            StreakComputation; future-dated logs appear in anomalies
        """
        if goal < 1:
            raise ValidationError("daily_page_goal must be positive")

        logs_by_day, anomalies = StreakEngine.index_logs(logs, as_of)
        qualifying = StreakEngine.qualifying_days(logs_by_day, set(frozen), goal, as_of)

        anchor = as_of if as_of in qualifying else as_of - ONE_DAY
        current = 0
        day = anchor
        while day in qualifying:
            current += 1
            day -= ONE_DAY

        return StreakComputation(
            current_streak=current,
            longest_streak=StreakEngine.longest_run(qualifying),
            anchor=anchor,
            gap_date=day,
            anomalies=anomalies,
        )

    @staticmethod
    def authorize_freeze(
        target: date,
        today: date,
        logs: Iterable[DailyReadingLog],
        frozen: Set[date],
        goal: int,
        freezes_available: int,
    ) -> StreakComputation:
        """
        Check every freeze precondition against one consistent state.

        Order: not in the past -> already qualifying -> duplicate ->
        not the gap before the live run -> no freezes left.

        Returns:
            the pre-freeze computation

        Raises:
            NotEligibleError, AlreadyQualifyingError, DuplicateFreezeError,
            InsufficientFreezesError
        """
        if target >= today:
            raise NotEligibleError(f"{target.isoformat()} is not a past day")

        logs = list(logs)
        if any(log.log_date == target and log.pages_read >= goal for log in logs):
            raise AlreadyQualifyingError(f"{target.isoformat()} already meets the daily goal")

        if target in frozen:
            raise DuplicateFreezeError(f"{target.isoformat()} is already frozen")

        computation = StreakEngine.compute(logs, frozen, goal, today)
        if target != computation.gap_date:
            raise NotEligibleError(
                f"Only the gap right before the current streak ({computation.gap_date.isoformat()}) can be frozen"
            )
        if computation.current_streak == 0:
            # Nothing after the gap; a freeze only helps if a run precedes it
            logs_by_day, _ = StreakEngine.index_logs(logs, today)
            before = target - ONE_DAY
            if not (StreakEngine.log_qualifies(logs_by_day.get(before), goal) or before in frozen):
                raise NotEligibleError("There is no streak to preserve")

        if freezes_available <= 0:
            raise InsufficientFreezesError("No freezes available")

        return computation

    @staticmethod
    def project_calendar(
        logs: Iterable[DailyReadingLog],
        frozen: Iterable[date],
        goal: int,
        from_date: date,
        to_date: date,
        today: date,
    ) -> List[CalendarDay]:
        """Per-day status for [from_date, to_date] using the streak qualification rule."""
        if from_date > to_date:
            raise ValidationError("from_date must not be after to_date")

        logs_by_day, _ = StreakEngine.index_logs(logs, today)
        frozen_days = {d for d in frozen if d <= today}
        recorded = set(logs_by_day) | frozen_days
        first_activity = min(recorded) if recorded else None

        days: List[CalendarDay] = []
        day = from_date
        while day <= to_date:
            log = logs_by_day.get(day)
            status: DayStatus
            if day > today:
                status = "future"
            elif StreakEngine.log_qualifies(log, goal):
                status = "qualifying"
            elif day in frozen_days:
                status = "frozen"
            elif day == today:
                status = "pending"
            elif first_activity is None or day < first_activity:
                status = "no_data"
            else:
                status = "missed"
            days.append(
                CalendarDay(day=day, status=status, pages_read=log.pages_read if log and day <= today else None)
            )
            day += ONE_DAY
        return days
