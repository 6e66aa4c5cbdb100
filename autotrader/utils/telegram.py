"""Telegram notifications for opens, closes and lifecycle events. Never log token or chat_id."""

from __future__ import annotations
import logging
from typing import Callable

import requests

logger = logging.getLogger("autotrader.utils.telegram")

TELEGRAM_URL = "https://api.telegram.org/bot{token}/sendMessage"


def send_telegram(text: str, bot_token: str = "", chat_id: str = "", timeout: float = 10.0) -> bool:
    """Send message to Telegram. Returns True on success; False when unconfigured or on any failure."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        r = requests.post(
            TELEGRAM_URL.format(token=bot_token),
            json={"chat_id": chat_id, "text": text},
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.warning("Telegram error: %s", type(e).__name__)
        return False
    if r.status_code != 200:
        logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
        return False
    return True


def make_notifier(bot_token: str = "", chat_id: str = "", prefix: str = "") -> Callable[[str], bool]:
    """Bind credentials (and an optional message prefix, e.g. the symbol) into a one-arg notifier."""
    def notify(text: str) -> bool:
        return send_telegram(f"{prefix}{text}", bot_token, chat_id)
    return notify
