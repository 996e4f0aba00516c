from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from stock_checks.jobs import Monitor, run_tick
from stock_checks.ledger import METRICS, PERIODS, counter_key, get_count
from stock_checks.settings import DEFAULT_CONFIG_PATH, MonitorSettings, load_config, load_settings
from stock_checks.store import CounterStore, MemoryStore, SqliteStore
from stock_checks.timeline import DAILY_TIMES_KEY, get_times, parse_observation_ts
from stock_checks.trigger import next_tick_after


LOGGER = logging.getLogger("stock-monitor")


def build_store(settings: MonitorSettings) -> CounterStore:
    if settings.store_backend == "memory":
        LOGGER.warning("Using in-memory store; counters are lost on restart")
        return MemoryStore()
    return SqliteStore(settings.store_path)


async def snapshot_counters(store: CounterStore) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for period in PERIODS:
        out[period] = {m: await get_count(store, counter_key(period, m)) for m in METRICS}
    out[DAILY_TIMES_KEY] = await get_times(store, DAILY_TIMES_KEY)
    return out


async def run_loop(settings: MonitorSettings, *, once: bool = False, at: datetime | None = None) -> int:
    store = build_store(settings)
    try:
        async with httpx.AsyncClient() as http_client:
            monitor = Monitor(settings=settings, store=store, http_client=http_client)

            if once or at is not None:
                job = await run_tick(monitor, at or datetime.now(timezone.utc))
                return 0 if job else 1

            LOGGER.info(
                "Monitor started poll_interval_minutes=%s summary_time_utc=%s store=%s",
                settings.poll_interval_minutes,
                settings.schedule.summary_time.strftime("%H:%M"),
                settings.store_backend,
            )
            while True:
                now = datetime.now(timezone.utc)
                tick = next_tick_after(
                    now,
                    interval_minutes=settings.poll_interval_minutes,
                    summary_time=settings.schedule.summary_time,
                )
                sleep_for = max(0.0, (tick - now).total_seconds())
                LOGGER.info("Sleeping until next tick tick=%s sleep_seconds=%s", tick.isoformat(), round(sleep_for, 3))
                await asyncio.sleep(sleep_for)
                await run_tick(monitor, tick)
    finally:
        if isinstance(store, SqliteStore):
            store.close()


async def print_counters(settings: MonitorSettings) -> int:
    store = build_store(settings)
    try:
        print(json.dumps(await snapshot_counters(store), indent=2, sort_keys=True))
    finally:
        if isinstance(store, SqliteStore):
            store.close()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Product stock availability monitor")
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one tick for the current time and exit")
    parser.add_argument(
        "--at",
        default=None,
        help="Run one tick as if it fired at this ISO-8601 instant (UTC if no offset) and exit",
    )
    parser.add_argument("--counters", action="store_true", help="Print the stored counters as JSON and exit")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    # The Telegram token is part of the request URL.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    settings = load_settings(load_config(Path(args.config)))

    if args.counters:
        return asyncio.run(print_counters(settings))

    at = parse_observation_ts(args.at) if args.at else None
    return asyncio.run(run_loop(settings, once=bool(args.once), at=at))


if __name__ == "__main__":
    raise SystemExit(main())
