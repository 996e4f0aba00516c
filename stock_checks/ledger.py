from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable

from stock_checks.store import CounterStore


LOGGER = logging.getLogger("stock-monitor")

PERIODS = ("daily", "weekly", "monthly", "all")
METRICS = ("total", "inStock", "outStock", "errors")

IN_STOCK = "inStock"
OUT_OF_STOCK = "outStock"
ERRORS = "errors"
OUTCOMES = (IN_STOCK, OUT_OF_STOCK, ERRORS)


def counter_key(period: str, metric: str) -> str:
    return f"{period}:{metric}"


def period_keys(period: str) -> list[str]:
    return [counter_key(period, m) for m in METRICS]


@dataclass(frozen=True)
class PeriodCounts:
    period: str
    total: int
    in_stock: int
    out_of_stock: int
    errors: int


async def gather_logged(what: str, labels: list[str], aws: Iterable[Awaitable[Any]]) -> list[Any]:
    """
    Await every awaitable concurrently. A failure is logged against its label and
    returned as None in its slot; siblings keep running.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    out: list[Any] = []
    for label, res in zip(labels, results):
        if isinstance(res, BaseException):
            LOGGER.error("%s failed key=%s error=%s: %s", what, label, type(res).__name__, res)
            out.append(None)
        else:
            out.append(res)
    return out


async def get_count(store: CounterStore, key: str) -> int:
    raw = await store.get(key)
    if raw is None or not str(raw).strip():
        return 0
    try:
        return int(str(raw).strip())
    except ValueError:
        LOGGER.warning("Counter value is not an integer; reading as 0 key=%s value=%r", key, raw)
        return 0


async def increment(store: CounterStore, key: str) -> int:
    # Read-modify-write without compare-and-swap: overlapping ticks can lose an increment.
    n = await get_count(store, key) + 1
    await store.put(key, str(n))
    return n


async def reset_all(store: CounterStore, keys: Iterable[str]) -> None:
    keys = list(keys)
    await gather_logged("Counter reset", keys, (store.put(k, "0") for k in keys))


async def read_counts(store: CounterStore, period: str) -> PeriodCounts:
    total, in_stock, out_of_stock, errors = await asyncio.gather(
        *(get_count(store, k) for k in period_keys(period))
    )
    return PeriodCounts(
        period=period,
        total=total,
        in_stock=in_stock,
        out_of_stock=out_of_stock,
        errors=errors,
    )


async def record_outcome(store: CounterStore, outcome: str) -> None:
    if outcome not in OUTCOMES:
        raise ValueError(f"Unknown outcome {outcome!r}")

    total_keys = [counter_key(p, "total") for p in PERIODS]
    await gather_logged("Counter increment", total_keys, (increment(store, k) for k in total_keys))

    outcome_keys = [counter_key(p, outcome) for p in PERIODS]
    await gather_logged("Counter increment", outcome_keys, (increment(store, k) for k in outcome_keys))
