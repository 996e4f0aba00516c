from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta, timezone


CHECK = "check"
DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class SummarySchedule:
    """When summaries fire. All fields are UTC."""

    summary_time: dt_time = dt_time(hour=18, minute=29)
    weekly_weekday: int = 5  # datetime.weekday(): Saturday
    monthly_day: int = 1


def _as_utc(tick: datetime) -> datetime:
    if tick.tzinfo is None:
        return tick.replace(tzinfo=timezone.utc)
    return tick.astimezone(timezone.utc)


def select_job(tick: datetime, schedule: SummarySchedule | None = None) -> str:
    """
    Exactly one job per tick. On the summary minute the most specific period wins:
    monthly, then weekly, then daily. Every other minute runs a regular check.
    """
    sched = schedule or SummarySchedule()
    now = _as_utc(tick)
    at_summary_minute = now.hour == sched.summary_time.hour and now.minute == sched.summary_time.minute

    if at_summary_minute and now.day == sched.monthly_day:
        return MONTHLY
    if at_summary_minute and now.weekday() == sched.weekly_weekday:
        return WEEKLY
    if at_summary_minute:
        return DAILY
    return CHECK


def next_tick_after(now: datetime, *, interval_minutes: int, summary_time: dt_time) -> datetime:
    """
    Next whole minute strictly after `now` that is a polling slot (minute of the
    hour divisible by interval_minutes) or the summary minute.
    """
    interval_minutes = max(1, int(interval_minutes))
    cur = _as_utc(now).replace(second=0, microsecond=0) + timedelta(minutes=1)
    # A full day always contains the summary minute.
    for _ in range(24 * 60 + 1):
        if cur.minute % interval_minutes == 0:
            return cur
        if cur.hour == summary_time.hour and cur.minute == summary_time.minute:
            return cur
        cur += timedelta(minutes=1)
    return cur
