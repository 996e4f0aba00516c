from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from stock_checks.availability import AvailabilityParser, PollResult, field_parser, poll_availability
from stock_checks.ledger import (
    IN_STOCK,
    PeriodCounts,
    gather_logged,
    period_keys,
    read_counts,
    record_outcome,
    reset_all,
)
from stock_checks.settings import MonitorSettings
from stock_checks.store import CounterStore
from stock_checks.telegram import TelegramConfig, notify
from stock_checks.timeline import (
    append_time,
    build_intervals,
    clear_times,
    format_observation_ts,
    get_times,
    render_intervals,
    times_key,
)
from stock_checks.trigger import CHECK, DAILY, select_job


LOGGER = logging.getLogger("stock-monitor")


@dataclass
class Monitor:
    settings: MonitorSettings
    store: CounterStore
    http_client: httpx.AsyncClient
    parser: AvailabilityParser | None = None
    telegram: TelegramConfig = field(init=False)

    def __post_init__(self) -> None:
        self.telegram = TelegramConfig(
            bot_token=self.settings.telegram_bot_token,
            chat_id=self.settings.telegram_chat_id,
        )
        if self.parser is None:
            self.parser = field_parser(self.settings.availability_field)


def build_in_stock_alert(available: int) -> str:
    return f"Product in stock: {available}"


def build_summary_message(counts: PeriodCounts, intervals_text: str = "") -> str:
    msg = (
        f"{counts.period.capitalize()} summary: runs={counts.total} runs, in-stock={counts.in_stock} runs, "
        f"out-of-stock={counts.out_of_stock} runs, errors={counts.errors} runs"
    )
    if intervals_text:
        msg += f" Product was in stock between {intervals_text}."
    return msg


async def run_check(monitor: Monitor, tick: datetime) -> PollResult:
    ts = format_observation_ts(tick)
    LOGGER.info("Checking stock ts=%s", ts)
    result = await poll_availability(
        monitor.http_client,
        monitor.settings.api_url,
        parser=monitor.parser,
        timeout_seconds=monitor.settings.poll_timeout_seconds,
    )
    LOGGER.info(
        "Poll finished ts=%s outcome=%s available=%s status=%s elapsed_ms=%s error=%s",
        ts,
        result.outcome,
        result.available,
        result.details.get("status_code"),
        result.details.get("http_elapsed_ms"),
        result.details.get("error") or result.details.get("parse_error"),
    )

    if result.outcome == IN_STOCK:
        await gather_logged(
            "In-stock side effect",
            [times_key(DAILY), "telegram"],
            [
                append_time(monitor.store, times_key(DAILY), ts),
                notify(monitor.http_client, monitor.telegram, build_in_stock_alert(result.available)),
            ],
        )

    await record_outcome(monitor.store, result.outcome)
    LOGGER.info("Check complete ts=%s outcome=%s", ts, result.outcome)
    return result


async def run_summary(monitor: Monitor, period: str) -> str:
    counts = await read_counts(monitor.store, period)

    intervals_text = ""
    if period == DAILY:
        times = await get_times(monitor.store, times_key(DAILY))
        intervals = build_intervals(times, interval_ms=monitor.settings.poll_interval_ms)
        intervals_text = render_intervals(intervals, monitor.settings.tz)

    msg = build_summary_message(counts, intervals_text)
    sent = await notify(monitor.http_client, monitor.telegram, msg)

    await reset_all(monitor.store, period_keys(period))
    if period == DAILY:
        await clear_times(monitor.store, times_key(DAILY))

    LOGGER.info(
        "Summary complete period=%s total=%s in_stock=%s out_of_stock=%s errors=%s sent_ok=%s",
        period,
        counts.total,
        counts.in_stock,
        counts.out_of_stock,
        counts.errors,
        sent,
    )
    return msg


async def run_tick(monitor: Monitor, tick: datetime | None = None) -> str | None:
    """
    Run whichever job the tick selects. Never raises; returns the job name, or None
    if the job crashed.

    The tick is truncated to the whole minute so observations recorded by late
    external cron runs stay exactly one polling interval apart.
    """
    tick = (tick or datetime.now(timezone.utc)).replace(second=0, microsecond=0)
    job = select_job(tick, monitor.settings.schedule)
    LOGGER.info("Tick tick=%s job=%s", tick.isoformat(), job)
    try:
        if job == CHECK:
            await run_check(monitor, tick)
        else:
            await run_summary(monitor, job)
    except Exception:
        LOGGER.exception("Tick job crashed job=%s", job)
        return None
    return job
