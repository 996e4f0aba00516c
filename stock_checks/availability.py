from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlsplit, urlunsplit

import httpx

from stock_checks.ledger import ERRORS, IN_STOCK, OUT_OF_STOCK


DEFAULT_AVAILABILITY_FIELD = "available"

AvailabilityParser = Callable[[Any], int]


@dataclass(frozen=True)
class PollResult:
    outcome: str
    available: int
    details: dict[str, Any]


def _safe_url(url: str) -> str:
    """
    Keep querystrings (which may carry API keys) out of logs.
    """
    s = (url or "").strip()
    if not s:
        return s
    try:
        parts = urlsplit(s)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    except Exception:
        return s[:500]


def _lookup(payload: Any, field: str) -> Any:
    node = payload
    for part in str(field or "").split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def parse_availability(payload: Any, *, field: str = DEFAULT_AVAILABILITY_FIELD) -> int:
    """
    Extract the number of available units from a decoded JSON payload.

    `field` is a dotted path into nested objects ("data.stock.available").
    Always returns a non-negative int; a missing or malformed field reads as 0.
    """
    value = _lookup(payload, field)
    if value is None:
        return 0
    try:
        n = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, n)


def field_parser(field: str) -> AvailabilityParser:
    return lambda payload: parse_availability(payload, field=field)


async def poll_availability(
    client: httpx.AsyncClient,
    url: str,
    *,
    parser: AvailabilityParser = parse_availability,
    timeout_seconds: float = 15.0,
) -> PollResult:
    started = time.perf_counter()
    try:
        resp = await client.get(url, follow_redirects=True, timeout=timeout_seconds)
    except httpx.HTTPError as e:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return PollResult(
            outcome=ERRORS,
            available=0,
            details={
                "url": _safe_url(url),
                "error": f"http_error: {type(e).__name__}: {e}",
                "http_elapsed_ms": round(elapsed_ms, 3),
            },
        )

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    details: dict[str, Any] = {
        "url": _safe_url(url),
        "status_code": resp.status_code,
        "http_elapsed_ms": round(elapsed_ms, 3),
    }
    if not (200 <= resp.status_code < 300):
        details["error"] = f"http_status_{resp.status_code}"
        return PollResult(outcome=ERRORS, available=0, details=details)

    try:
        payload = resp.json()
    except ValueError:
        details["parse_error"] = "invalid_json"
        payload = None

    available = parser(payload)
    outcome = IN_STOCK if available > 0 else OUT_OF_STOCK
    return PollResult(outcome=outcome, available=available, details=details)
