"""Tests for the pure streak engine (no database)."""

import random
from datetime import date, timedelta

import pytest

from bookstreak.core.errors import (
    AlreadyQualifyingError,
    DuplicateFreezeError,
    InsufficientFreezesError,
    InvalidStateError,
    NotEligibleError,
    ValidationError,
)
from bookstreak.features.streaks.engine import StreakEngine
from bookstreak.models.streak import DailyReadingLog

GOAL = 10


def day(n: int) -> date:
    return date(2024, 3, 1) + timedelta(days=n - 1)


def logs_for(*days: int, pages: int = GOAL):
    return [DailyReadingLog(log_date=day(n), pages_read=pages) for n in days]


def test_gap_day_breaks_streak_until_frozen():
    logs = logs_for(1, 2, 3, 4, 5, 7)

    before = StreakEngine.compute(logs, set(), GOAL, day(7))
    assert before.current_streak == 1
    assert before.longest_streak == 5
    assert before.gap_date == day(6)

    after = StreakEngine.compute(logs, {day(6)}, GOAL, day(7))
    assert after.current_streak == 7
    assert after.longest_streak == 7


def test_today_without_log_keeps_streak_alive():
    result = StreakEngine.compute(logs_for(1, 2, 3), set(), GOAL, day(4))
    assert result.current_streak == 3
    assert result.anchor == day(3)


def test_today_below_goal_does_not_break_streak():
    logs = logs_for(1, 2, 3) + [DailyReadingLog(log_date=day(4), pages_read=GOAL - 1)]
    result = StreakEngine.compute(logs, set(), GOAL, day(4))
    assert result.current_streak == 3


def test_today_meeting_goal_extends_streak():
    result = StreakEngine.compute(logs_for(1, 2, 3, 4), set(), GOAL, day(4))
    assert result.current_streak == 4
    assert result.anchor == day(4)


def test_missed_yesterday_resets_current_but_keeps_longest():
    result = StreakEngine.compute(logs_for(1, 2), set(), GOAL, day(4))
    assert result.current_streak == 0
    assert result.longest_streak == 2
    assert result.gap_date == day(3)


def test_below_goal_past_day_never_auto_qualifies():
    logs = logs_for(1, 2, 4) + [DailyReadingLog(log_date=day(3), pages_read=GOAL - 1)]
    result = StreakEngine.compute(logs, set(), GOAL, day(4))
    assert result.current_streak == 1
    assert result.gap_date == day(3)


def test_future_dated_log_is_excluded_and_reported():
    logs = logs_for(1, 2, 9)
    result = StreakEngine.compute(logs, set(), GOAL, day(3))
    assert result.current_streak == 2
    assert result.longest_streak == 2
    assert [a.log_date for a in result.anomalies] == [day(9)]
    assert result.anomalies[0].code == InvalidStateError.code


def test_goal_change_requalifies_history():
    logs = logs_for(1, 2, 3, pages=12)
    assert StreakEngine.compute(logs, set(), 10, day(3)).current_streak == 3
    assert StreakEngine.compute(logs, set(), 15, day(3)).current_streak == 0


def test_non_positive_goal_rejected():
    with pytest.raises(ValidationError):
        StreakEngine.compute([], set(), 0, day(1))


def test_empty_history():
    result = StreakEngine.compute([], set(), GOAL, day(1))
    assert result.current_streak == 0
    assert result.longest_streak == 0


def _random_history(rng: random.Random, as_of: date):
    logs = []
    frozen = set()
    for offset in range(60):
        d = as_of - timedelta(days=offset)
        roll = rng.random()
        if roll < 0.6:
            logs.append(DailyReadingLog(log_date=d, pages_read=rng.randint(GOAL, GOAL * 3)))
        elif roll < 0.75:
            logs.append(DailyReadingLog(log_date=d, pages_read=rng.randint(0, GOAL - 1)))
        elif roll < 0.8 and offset > 0:
            frozen.add(d)
    return logs, frozen


@pytest.mark.parametrize("seed", range(25))
def test_longest_never_below_current(seed):
    rng = random.Random(seed)
    logs, frozen = _random_history(rng, day(60))
    result = StreakEngine.compute(logs, frozen, GOAL, day(60))
    assert result.longest_streak >= result.current_streak


@pytest.mark.parametrize("seed", range(25))
def test_next_qualifying_day_adds_exactly_one(seed):
    rng = random.Random(seed)
    as_of = day(60)
    logs, frozen = _random_history(rng, as_of)
    before = StreakEngine.compute(logs, frozen, GOAL, as_of)

    next_day = before.anchor + timedelta(days=1)
    extended = logs + [DailyReadingLog(log_date=next_day, pages_read=GOAL)]
    after = StreakEngine.compute(extended, frozen, GOAL, max(as_of, next_day))

    assert after.current_streak == before.current_streak + 1
    assert after.longest_streak >= before.longest_streak


@pytest.mark.parametrize("seed", range(10))
def test_recomputation_is_idempotent(seed):
    rng = random.Random(seed)
    logs, frozen = _random_history(rng, day(60))
    first = StreakEngine.compute(logs, frozen, GOAL, day(60))
    second = StreakEngine.compute(list(reversed(logs)), frozen, GOAL, day(60))
    assert (first.current_streak, first.longest_streak, first.gap_date) == (
        second.current_streak,
        second.longest_streak,
        second.gap_date,
    )


# Freeze authorization ------------------------------------------------------

def test_authorize_freeze_on_gap_before_run():
    computation = StreakEngine.authorize_freeze(day(6), day(7), logs_for(1, 2, 3, 4, 5, 7), set(), GOAL, 1)
    assert computation.current_streak == 1


def test_authorize_freeze_rejects_today_and_future():
    logs = logs_for(1, 2, 3)
    with pytest.raises(NotEligibleError):
        StreakEngine.authorize_freeze(day(4), day(4), logs, set(), GOAL, 1)
    with pytest.raises(NotEligibleError):
        StreakEngine.authorize_freeze(day(5), day(4), logs, set(), GOAL, 1)


def test_authorize_freeze_rejects_qualifying_day_before_counting_freezes():
    with pytest.raises(AlreadyQualifyingError):
        StreakEngine.authorize_freeze(day(2), day(4), logs_for(1, 2, 3), set(), GOAL, 0)


def test_authorize_freeze_rejects_duplicate():
    with pytest.raises(DuplicateFreezeError):
        StreakEngine.authorize_freeze(day(6), day(7), logs_for(1, 2, 3, 4, 5, 7), {day(6)}, GOAL, 1)


def test_authorize_freeze_rejects_day_two_gaps_back():
    logs = logs_for(1, 2, 3, 5, 7)
    with pytest.raises(NotEligibleError):
        StreakEngine.authorize_freeze(day(4), day(7), logs, set(), GOAL, 1)


def test_authorize_freeze_requires_available_freeze():
    with pytest.raises(InsufficientFreezesError):
        StreakEngine.authorize_freeze(day(6), day(7), logs_for(1, 2, 3, 4, 5, 7), set(), GOAL, 0)


def test_authorize_freeze_repairs_missed_yesterday():
    # Today not read yet, yesterday missed: the run before it is preserved
    computation = StreakEngine.authorize_freeze(day(4), day(5), logs_for(1, 2, 3), set(), GOAL, 1)
    assert computation.current_streak == 0
    assert StreakEngine.compute(logs_for(1, 2, 3), {day(4)}, GOAL, day(5)).current_streak == 4


def test_authorize_freeze_rejects_when_no_streak_to_preserve():
    with pytest.raises(NotEligibleError):
        StreakEngine.authorize_freeze(day(4), day(5), [], set(), GOAL, 1)


def test_below_goal_day_can_be_frozen():
    logs = logs_for(1, 2, 4) + [DailyReadingLog(log_date=day(3), pages_read=3)]
    StreakEngine.authorize_freeze(day(3), day(4), logs, set(), GOAL, 1)


# Calendar projection -------------------------------------------------------

def test_calendar_statuses():
    logs = logs_for(2, 3, 5) + [DailyReadingLog(log_date=day(6), pages_read=1)]
    days = StreakEngine.project_calendar(logs, [day(4)], GOAL, day(1), day(9), day(7))
    statuses = {d.day: d.status for d in days}

    assert statuses[day(1)] == "no_data"
    assert statuses[day(2)] == "qualifying"
    assert statuses[day(4)] == "frozen"
    assert statuses[day(6)] == "missed"
    assert statuses[day(7)] == "pending"
    assert statuses[day(8)] == "future"
    assert statuses[day(9)] == "future"
    assert [d.day for d in days] == [day(n) for n in range(1, 10)]


def test_calendar_agrees_with_streak_qualification():
    rng = random.Random(7)
    as_of = day(60)
    logs, frozen = _random_history(rng, as_of)
    computation = StreakEngine.compute(logs, frozen, GOAL, as_of)
    calendar = StreakEngine.project_calendar(logs, frozen, GOAL, day(1), as_of, as_of)

    # Count the trailing run straight off the calendar
    run = 0
    for entry in reversed(calendar):
        if entry.status in ("qualifying", "frozen"):
            run += 1
        elif entry.status == "pending" and run == 0:
            continue
        else:
            break
    assert run == computation.current_streak


def test_calendar_rejects_reversed_range():
    with pytest.raises(ValidationError):
        StreakEngine.project_calendar([], [], GOAL, day(5), day(1), day(5))
