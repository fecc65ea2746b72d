"""Telegram Bot API delivery channel.

Uses the Bot API for delivery so notifications can be routed to a bot chat.
Settings: bot_token, chat_id, timeout (BOT_API / BOT_CHAT_ID as fallbacks).
"""

from __future__ import annotations

import os
import urllib.error
from typing import Any, Mapping, Optional

from adapters.notification_formatting import format_telegram_html
from adapters.webhook_channel import post_json
from core.errors import DeliveryFailure
from core.models import NotificationPayload

# Bot API rejects messages longer than this.
MAX_MESSAGE_CHARS = 4096


class TelegramBotChannel:
    """Channel that sends notifications via the Telegram Bot API."""

    name = "telegram"

    def __init__(self, settings: Optional[Mapping[str, Any]] = None) -> None:
        settings = dict(settings or {})
        self._bot_token = settings.get("bot_token") or os.getenv("BOT_API")
        self._chat_id = settings.get("chat_id") or os.getenv("BOT_CHAT_ID")
        self._timeout = float(settings.get("timeout", 10))

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def deliver(self, payload: NotificationPayload) -> Optional[str]:
        if not self._bot_token or not self._chat_id:
            raise DeliveryFailure(self.name, "bot_token and chat_id are required")

        text = format_telegram_html(payload, MAX_MESSAGE_CHARS)
        body = {
            "chat_id": str(self._chat_id),
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            status = post_json(self._endpoint(), body, {}, self._timeout)
        except (RuntimeError, urllib.error.URLError, OSError) as exc:
            raise DeliveryFailure(self.name, str(exc)) from exc
        return f"HTTP {status}"
