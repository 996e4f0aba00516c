from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable

from stock_checks.store import CounterStore


LOGGER = logging.getLogger("stock-monitor")

DAILY_TIMES_KEY = "daily:inTimes"
POLL_INTERVAL_MS = 15 * 60 * 1000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# (start_ms, end_ms)
Interval = tuple[int, int]


def times_key(period: str) -> str:
    return f"{period}:inTimes"


def format_observation_ts(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_observation_ts(value: str) -> datetime:
    s = str(value or "").strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_epoch_ms(dt: datetime) -> int:
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=int(ms))


def _decode_times(raw: str | None, *, key: str) -> list[str]:
    if raw is None or not str(raw).strip():
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        LOGGER.warning("Timeline value is not valid JSON; treating as empty key=%s", key)
        return []
    if not isinstance(data, list):
        LOGGER.warning("Timeline value is not a list; treating as empty key=%s", key)
        return []
    return [item for item in data if isinstance(item, str)]


async def get_times(store: CounterStore, key: str) -> list[str]:
    return _decode_times(await store.get(key), key=key)


async def append_time(store: CounterStore, key: str, timestamp: str) -> None:
    # Not atomic: two overlapping appends can drop one of the timestamps.
    times = await get_times(store, key)
    times.append(timestamp)
    await store.put(key, json.dumps(times))


async def clear_times(store: CounterStore, key: str) -> None:
    await store.put(key, "[]")


def timestamps_to_epochs(timestamps: Iterable[Any]) -> list[int]:
    epochs: list[int] = []
    for ts in timestamps:
        try:
            epochs.append(to_epoch_ms(parse_observation_ts(ts)))
        except (TypeError, ValueError):
            LOGGER.warning("Skipping unparseable timeline entry value=%r", ts)
    epochs.sort()
    return epochs


def group_epochs(epochs: Iterable[int], *, interval_ms: int = POLL_INTERVAL_MS) -> list[list[int]]:
    """
    Split sorted epochs into runs where each element is exactly interval_ms after
    the previous one. Any other gap, including 0 for duplicates, starts a new run.
    """
    groups: list[list[int]] = []
    curr: list[int] = []
    for e in epochs:
        if not curr or e - curr[-1] == interval_ms:
            curr.append(e)
        else:
            groups.append(curr)
            curr = [e]
    if curr:
        groups.append(curr)
    return groups


def build_intervals(timestamps: Iterable[Any], *, interval_ms: int = POLL_INTERVAL_MS) -> list[Interval]:
    groups = group_epochs(timestamps_to_epochs(timestamps), interval_ms=interval_ms)
    return [(g[0], g[-1] + interval_ms) for g in groups]


def format_interval(start_ms: int, end_ms: int, tz: tzinfo) -> str:
    start = from_epoch_ms(start_ms).astimezone(tz)
    end = from_epoch_ms(end_ms).astimezone(tz)
    return f"{start.strftime('%H:%M')} - {end.strftime('%H:%M')}"


def render_intervals(intervals: Iterable[Interval], tz: tzinfo) -> str:
    return " and ".join(format_interval(start, end, tz) for start, end in intervals)
