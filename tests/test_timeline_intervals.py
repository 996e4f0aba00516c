from __future__ import annotations

import json
import random
from datetime import datetime, timedelta, timezone

import pytest

from stock_checks.settings import load_timezone
from stock_checks.store import MemoryStore
from stock_checks.timeline import (
    DAILY_TIMES_KEY,
    POLL_INTERVAL_MS,
    append_time,
    build_intervals,
    clear_times,
    format_interval,
    format_observation_ts,
    get_times,
    group_epochs,
    parse_observation_ts,
    render_intervals,
    to_epoch_ms,
)


T = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
IST = load_timezone("Asia/Kolkata")


def _ts(minutes: int) -> str:
    return format_observation_ts(T + timedelta(minutes=minutes))


def test_observation_ts_format_and_parse() -> None:
    s = format_observation_ts(datetime(2024, 5, 1, 10, 15, 0, 123456, tzinfo=timezone.utc))
    assert s == "2024-05-01T10:15:00.123Z"
    assert parse_observation_ts(s) == datetime(2024, 5, 1, 10, 15, 0, 123000, tzinfo=timezone.utc)


def test_consecutive_polls_merge_into_one_interval() -> None:
    intervals = build_intervals([_ts(0), _ts(15), _ts(30)])
    t_ms = to_epoch_ms(T)
    assert intervals == [(t_ms, t_ms + 45 * 60 * 1000)]


def test_gap_splits_into_two_intervals() -> None:
    intervals = build_intervals([_ts(0), _ts(30)])
    t_ms = to_epoch_ms(T)
    assert intervals == [
        (t_ms, t_ms + 15 * 60 * 1000),
        (t_ms + 30 * 60 * 1000, t_ms + 45 * 60 * 1000),
    ]


def test_grouping_ignores_input_order() -> None:
    stamps = [_ts(m) for m in (0, 15, 30, 90, 105, 300)]
    shuffled = list(stamps)
    random.Random(7).shuffle(shuffled)
    assert build_intervals(shuffled) == build_intervals(stamps)
    assert len(build_intervals(stamps)) == 3


def test_duplicate_timestamps_split_groups() -> None:
    groups = group_epochs([0, 0, POLL_INTERVAL_MS])
    assert groups == [[0], [0, POLL_INTERVAL_MS]]


def test_unparseable_entries_are_skipped() -> None:
    assert build_intervals(["garbage", _ts(0)]) == [(to_epoch_ms(T), to_epoch_ms(T) + POLL_INTERVAL_MS)]


def test_custom_interval() -> None:
    five_min = 5 * 60 * 1000
    assert len(build_intervals([_ts(0), _ts(5), _ts(10)], interval_ms=five_min)) == 1
    assert len(build_intervals([_ts(0), _ts(5), _ts(10)])) == 3


def test_render_intervals_in_display_timezone() -> None:
    # 10:00Z is 15:30 in Asia/Kolkata.
    intervals = build_intervals([_ts(0), _ts(15), _ts(30), _ts(120)])
    assert render_intervals(intervals, IST) == "15:30 - 16:15 and 17:30 - 17:45"


def test_single_timestamp_renders_fifteen_minute_window() -> None:
    assert render_intervals(build_intervals([_ts(0)]), timezone.utc) == "10:00 - 10:15"


def test_empty_input_renders_empty_string() -> None:
    assert build_intervals([]) == []
    assert render_intervals([], IST) == ""


def test_format_interval_crosses_midnight() -> None:
    start = to_epoch_ms(datetime(2024, 5, 1, 18, 15, tzinfo=timezone.utc))
    assert format_interval(start, start + POLL_INTERVAL_MS, IST) == "23:45 - 00:00"


@pytest.mark.asyncio
async def test_append_get_and_clear_times() -> None:
    store = MemoryStore()
    assert await get_times(store, DAILY_TIMES_KEY) == []

    await append_time(store, DAILY_TIMES_KEY, _ts(15))
    await append_time(store, DAILY_TIMES_KEY, _ts(0))
    assert await get_times(store, DAILY_TIMES_KEY) == [_ts(15), _ts(0)]
    assert json.loads(store.data[DAILY_TIMES_KEY]) == [_ts(15), _ts(0)]

    await clear_times(store, DAILY_TIMES_KEY)
    assert store.data[DAILY_TIMES_KEY] == "[]"
    assert await get_times(store, DAILY_TIMES_KEY) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["{not json", '{"a": 1}', "42"])
async def test_corrupt_timeline_reads_as_empty(raw: str) -> None:
    store = MemoryStore({DAILY_TIMES_KEY: raw})
    assert await get_times(store, DAILY_TIMES_KEY) == []

    await append_time(store, DAILY_TIMES_KEY, _ts(0))
    assert await get_times(store, DAILY_TIMES_KEY) == [_ts(0)]
