from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import time as dt_time, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from stock_checks.availability import DEFAULT_AVAILABILITY_FIELD
from stock_checks.trigger import WEEKDAYS, SummarySchedule


LOGGER = logging.getLogger("stock-monitor")

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


def load_config(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data


def _parse_hhmm(value: Any) -> dt_time:
    s = str(value or "").strip()
    if not s or ":" not in s:
        raise ValueError(f"Invalid time (expected HH:MM): {value!r}")
    hh_str, mm_str = s.split(":", 1)
    hour = int(hh_str)
    minute = int(mm_str)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time (expected HH:MM): {value!r}")
    return dt_time(hour=hour, minute=minute)


def _parse_weekday(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value <= 6:
            return value
        raise ValueError(f"Invalid weekday {value!r}; expected 0 (Monday) .. 6 (Sunday)")
    s = str(value or "").strip().lower()
    for idx, name in enumerate(WEEKDAYS):
        if s == name or (len(s) >= 3 and name.startswith(s)):
            return idx
    raise ValueError(f"Invalid weekday {value!r}")


def load_timezone(name: str):
    cleaned = (name or "").strip()
    if not cleaned or cleaned.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning("Timezone not found; falling back to UTC tz=%s", cleaned)
        return timezone.utc


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    raw = env.get(name)
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


@dataclass(frozen=True)
class MonitorSettings:
    api_url: str
    telegram_bot_token: str
    telegram_chat_id: str
    availability_field: str = DEFAULT_AVAILABILITY_FIELD
    poll_interval_minutes: int = 15
    poll_timeout_seconds: float = 15.0
    display_timezone: str = "Asia/Kolkata"
    schedule: SummarySchedule = SummarySchedule()
    store_backend: str = "sqlite"
    store_path: str = "data/counters.db"

    @property
    def poll_interval_ms(self) -> int:
        return int(self.poll_interval_minutes) * 60 * 1000

    @property
    def tz(self):
        return load_timezone(self.display_timezone)


def load_settings(config: dict[str, Any], env: Mapping[str, str] | None = None) -> MonitorSettings:
    """
    Merge the YAML config with environment variables. Secrets only come from the
    environment; STOCK_API_URL and STOCK_STORE_PATH override their YAML values.
    """
    env = os.environ if env is None else env

    api_url = _env_str(env, "STOCK_API_URL") or str(config.get("api_url") or "").strip()
    if not api_url:
        raise ValueError("Missing api_url (config) or STOCK_API_URL env var")
    if not api_url.startswith(("http://", "https://")):
        raise ValueError(f"api_url must be an http(s) URL, got {api_url!r}")

    bot_token = _env_str(env, "TELEGRAM_BOT_TOKEN")
    chat_id = _env_str(env, "TELEGRAM_CHAT_ID")
    if not bot_token or not chat_id:
        raise RuntimeError("Missing TELEGRAM_BOT_TOKEN and/or TELEGRAM_CHAT_ID env vars")

    summaries = config.get("summaries") or {}
    if not isinstance(summaries, dict):
        summaries = {}
    monthly_day = int(summaries.get("monthly_day", 1))
    if not (1 <= monthly_day <= 31):
        raise ValueError(f"summaries.monthly_day must be 1..31, got {monthly_day}")
    schedule = SummarySchedule(
        summary_time=_parse_hhmm(summaries.get("time_utc", "18:29")),
        weekly_weekday=_parse_weekday(summaries.get("weekly_weekday", "saturday")),
        monthly_day=monthly_day,
    )

    store_cfg = config.get("store") or {}
    if not isinstance(store_cfg, dict):
        store_cfg = {}
    store_backend = str(store_cfg.get("backend") or "sqlite").strip().lower()
    if store_backend not in {"sqlite", "memory"}:
        raise ValueError(f"store.backend must be 'sqlite' or 'memory', got {store_backend!r}")
    store_path = _env_str(env, "STOCK_STORE_PATH") or str(store_cfg.get("path") or "data/counters.db")

    poll_interval_minutes = int(config.get("poll_interval_minutes", 15))
    # Polling slots are minutes of the hour divisible by the interval; only divisors of 60
    # keep the spacing even across the hour boundary.
    if poll_interval_minutes < 1 or 60 % poll_interval_minutes != 0:
        raise ValueError(f"poll_interval_minutes must divide 60, got {poll_interval_minutes}")

    return MonitorSettings(
        api_url=api_url,
        telegram_bot_token=bot_token,
        telegram_chat_id=chat_id,
        availability_field=str(config.get("availability_field") or DEFAULT_AVAILABILITY_FIELD).strip(),
        poll_interval_minutes=poll_interval_minutes,
        poll_timeout_seconds=max(1.0, float(config.get("poll_timeout_seconds", 15.0))),
        display_timezone=str(config.get("display_timezone") or "Asia/Kolkata"),
        schedule=schedule,
        store_backend=store_backend,
        store_path=store_path,
    )
