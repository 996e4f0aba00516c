from __future__ import annotations

import pytest

from stock_checks.ledger import (
    ERRORS,
    IN_STOCK,
    OUT_OF_STOCK,
    PERIODS,
    counter_key,
    get_count,
    increment,
    period_keys,
    read_counts,
    record_outcome,
    reset_all,
)
from stock_checks.store import MemoryStore


class _FlakyStore(MemoryStore):
    def __init__(self, fail_keys: set[str]) -> None:
        super().__init__()
        self.fail_keys = fail_keys

    async def put(self, key: str, value: str) -> None:
        if key in self.fail_keys:
            raise OSError(f"write failed for {key}")
        await super().put(key, value)


def test_counter_key_namespace() -> None:
    assert period_keys("weekly") == ["weekly:total", "weekly:inStock", "weekly:outStock", "weekly:errors"]
    assert counter_key("all", "errors") == "all:errors"


@pytest.mark.asyncio
async def test_get_count_absent_and_garbage() -> None:
    store = MemoryStore({"daily:total": "7", "daily:errors": "not-a-number"})
    assert await get_count(store, "daily:total") == 7
    assert await get_count(store, "daily:inStock") == 0
    assert await get_count(store, "daily:errors") == 0


@pytest.mark.asyncio
async def test_increment_writes_decimal_string() -> None:
    store = MemoryStore()
    assert await increment(store, "all:total") == 1
    assert await increment(store, "all:total") == 2
    assert store.data["all:total"] == "2"


@pytest.mark.asyncio
async def test_record_outcome_keeps_total_equal_to_sum_of_outcomes() -> None:
    store = MemoryStore()
    outcomes = [IN_STOCK, OUT_OF_STOCK, OUT_OF_STOCK, ERRORS, IN_STOCK, OUT_OF_STOCK]
    for outcome in outcomes:
        await record_outcome(store, outcome)

    for period in PERIODS:
        counts = await read_counts(store, period)
        assert counts.total == len(outcomes)
        assert counts.in_stock == 2
        assert counts.out_of_stock == 3
        assert counts.errors == 1
        assert counts.total == counts.in_stock + counts.out_of_stock + counts.errors


@pytest.mark.asyncio
async def test_record_outcome_rejects_unknown_outcome() -> None:
    with pytest.raises(ValueError):
        await record_outcome(MemoryStore(), "maybe")


@pytest.mark.asyncio
async def test_reset_all_continues_past_failed_key() -> None:
    store = _FlakyStore(fail_keys={"daily:inStock"})
    store.data.update({"daily:total": "4", "daily:inStock": "1", "daily:outStock": "2", "daily:errors": "1"})

    await reset_all(store, period_keys("daily"))

    assert store.data["daily:total"] == "0"
    assert store.data["daily:inStock"] == "1"
    assert store.data["daily:outStock"] == "0"
    assert store.data["daily:errors"] == "0"


@pytest.mark.asyncio
async def test_record_outcome_partial_failure_leaves_other_periods_updated() -> None:
    store = _FlakyStore(fail_keys={"weekly:total"})
    await record_outcome(store, OUT_OF_STOCK)

    assert "weekly:total" not in store.data
    assert store.data["weekly:outStock"] == "1"
    for period in ("daily", "monthly", "all"):
        assert store.data[f"{period}:total"] == "1"
        assert store.data[f"{period}:outStock"] == "1"
