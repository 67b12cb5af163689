"""
forge.engine.periods — Quest Period Windows & Streaks
======================================================

A daily period is one UTC calendar day.  A weekly period starts Sunday
00:00 UTC and lasts seven days.  Quest limits, weekly XP, the weekly
archive and streaks all use these windows.

Pure calculation, no database I/O.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta

from forge.database.models import QuestType


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def day_start(now: datetime) -> date:
    return ensure_utc(now).date()


def week_start(now: datetime) -> date:
    """The Sunday that opens the week containing *now*."""
    today = day_start(now)
    # weekday(): Monday=0 … Sunday=6
    return today - timedelta(days=(today.weekday() + 1) % 7)


def week_ending(now: datetime) -> date:
    """The Saturday that closes the week containing *now*."""
    return week_start(now) + timedelta(days=6)


def _midnight(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=UTC)


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = _midnight(day_start(now))
    return start, start + timedelta(days=1)


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = _midnight(week_start(now))
    return start, start + timedelta(days=7)


def period_start(quest_type: str, now: datetime) -> date:
    """Start date of the *quest_type* period containing *now*.

    Raises
    ------
    ValueError
        If *quest_type* is not ``daily`` or ``weekly``.
    """
    if quest_type == QuestType.DAILY:
        return day_start(now)
    if quest_type == QuestType.WEEKLY:
        return week_start(now)
    raise ValueError(f"Unknown quest type: {quest_type!r}")


def period_bounds(quest_type: str, now: datetime) -> tuple[datetime, datetime]:
    if quest_type == QuestType.DAILY:
        return day_bounds(now)
    if quest_type == QuestType.WEEKLY:
        return week_bounds(now)
    raise ValueError(f"Unknown quest type: {quest_type!r}")


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
def _consecutive(periods: Iterable[date], current: date, step: timedelta) -> int:
    seen = set(periods)
    # A streak stays alive until the current period ends without activity.
    cursor = current if current in seen else current - step
    count = 0
    while cursor in seen:
        count += 1
        cursor -= step
    return count


def daily_streak(days: Iterable[date], today: date) -> int:
    """Consecutive days with a completion, ending today or yesterday."""
    return _consecutive(days, today, timedelta(days=1))


def weekly_streak(weeks: Iterable[date], this_week: date) -> int:
    """Consecutive Sunday-start weeks with a completion, ending this week or last."""
    return _consecutive(weeks, this_week, timedelta(days=7))
