"""
Study streak, weekly totals and reminder maths.

Pure functions over timestamps so they can be tested without a database.
Timestamps are UTC; naive values (SQLite hands those back) are read as UTC.
"Local" means the configured IANA zone.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Protocol
from uuid import UUID


class _SessionLike(Protocol):
    id: UUID
    title: str
    status: str
    start_time: datetime
    reminder: int
    actual_duration: int | None


@dataclass(frozen=True)
class WeeklyTotals:
    hours: float
    sessions_completed: int


@dataclass(frozen=True)
class Reminder:
    session_id: UUID
    title: str
    start_time: datetime
    remind_at: datetime


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def local_day(ts: datetime, tz: tzinfo) -> date:
    """Calendar date of ts in tz."""
    return as_utc(ts).astimezone(tz).date()


def calculate_streak(completed_at: Iterable[datetime], now: datetime, tz: tzinfo) -> int:
    """
    Count consecutive studied days ending today, or yesterday if today is empty.

    Returns 0 when neither today nor yesterday has a completed session.
    """
    studied = {local_day(ts, tz) for ts in completed_at if ts is not None}
    today = local_day(now, tz)
    yesterday = today - timedelta(days=1)

    if today in studied:
        day = today
    elif yesterday in studied:
        day = yesterday
    else:
        return 0

    streak = 0
    while day in studied:
        streak += 1
        day -= timedelta(days=1)
    return streak


def start_of_week(now: datetime, tz: tzinfo) -> datetime:
    """Most recent Sunday at local midnight, returned in UTC."""
    local_now = as_utc(now).astimezone(tz)
    # weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (local_now.weekday() + 1) % 7
    sunday = local_now.date() - timedelta(days=days_since_sunday)
    local_midnight = datetime(sunday.year, sunday.month, sunday.day, tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)


def weekly_totals(sessions: Iterable[_SessionLike], week_start: datetime) -> WeeklyTotals:
    """Hours and count of completed sessions starting on or after week_start."""
    week_start = as_utc(week_start)
    minutes = 0
    completed = 0
    for session in sessions:
        if as_utc(session.start_time) < week_start:
            continue
        if session.status != "completed":
            continue
        completed += 1
        minutes += session.actual_duration or 0
    return WeeklyTotals(hours=round(minutes / 60, 1), sessions_completed=completed)


def actual_duration_minutes(start: datetime, end: datetime) -> int:
    return round((as_utc(end) - as_utc(start)).total_seconds() / 60)


def upcoming_reminders(
    sessions: Iterable[_SessionLike],
    now: datetime,
    lookahead: timedelta,
) -> list[Reminder]:
    """Reminder fire times for scheduled sessions starting within the lookahead window."""
    now = as_utc(now)
    horizon = now + lookahead
    reminders = []
    for session in sessions:
        start = as_utc(session.start_time)
        if session.status != "scheduled" or start < now or start > horizon:
            continue
        reminders.append(
            Reminder(
                session_id=session.id,
                title=session.title,
                start_time=start,
                remind_at=start - timedelta(minutes=session.reminder),
            )
        )
    reminders.sort(key=lambda r: r.remind_at)
    return reminders
