from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import httpx


LOGGER = logging.getLogger("stock-monitor")

TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_LEN = 3900


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str
    api_base: str = TELEGRAM_API_BASE


def split_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    """
    Split on the last " and " or whitespace before max_len so interval lists in
    long daily summaries stay readable; hard-cut only when neither exists.
    """
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while len(s) > max_len:
        cut = s.rfind(" and ", 0, max_len + 1)
        if cut <= 0:
            cut = s.rfind(" ", 0, max_len + 1)
        if cut <= 0:
            cut = max_len
        sep = " and " if s.startswith(" and ", cut) else ""
        parts.append(s[:cut].rstrip())
        s = s[cut + len(sep):].lstrip()
    if s:
        parts.append(s)
    return parts


def _redact(text: str, config: TelegramConfig) -> str:
    if config.bot_token:
        return text.replace(config.bot_token, "<redacted>")
    return text


async def send_telegram_message(
    client: httpx.AsyncClient, config: TelegramConfig, text: str
) -> tuple[bool, dict]:
    url = f"{config.api_base.rstrip('/')}/bot{config.bot_token}/sendMessage"
    payload = {"chat_id": config.chat_id, "text": text}
    try:
        resp = await client.post(url, json=payload, timeout=15.0)
    except httpx.HTTPError as e:
        return False, {"ok": False, "error": _redact(f"{type(e).__name__}: {e}", config)}

    try:
        data = resp.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    data.setdefault("status_code", resp.status_code)
    ok = resp.is_success and bool(data.get("ok"))
    return ok, data


def redact_telegram_response(data: dict) -> str:
    safe = {"ok": data.get("ok"), "status_code": data.get("status_code")}
    if isinstance(data.get("result"), dict):
        safe["message_id"] = data["result"].get("message_id")
    for k in ("error", "description"):
        if data.get(k):
            safe[k] = data.get(k)
    return json.dumps(safe, ensure_ascii=False)


async def notify(client: httpx.AsyncClient, config: TelegramConfig, text: str) -> bool:
    """
    Send text to the configured chat. Failures are logged and reported through the
    return value; nothing is raised or retried.
    """
    ok_all = True
    for part in split_message(text):
        ok, resp = await send_telegram_message(client, config, part)
        if not ok:
            LOGGER.error("Telegram send failed telegram=%s", redact_telegram_response(resp))
        ok_all = ok_all and ok
    LOGGER.info("Telegram message sent ok=%s chars=%s", ok_all, len(text or ""))
    return ok_all
