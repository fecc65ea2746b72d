"""Select a delivery channel adapter from resolved options.

The delivery method switches adapters without changing core logic.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict

from adapters.log_channel import LogChannel
from adapters.smtp_channel import SmtpChannel
from adapters.telegram_bot_channel import TelegramBotChannel
from adapters.webhook_channel import WebhookChannel
from core.config import NotifierOptions
from core.ports import DeliveryChannel

LOGGER = logging.getLogger(__name__)

CHANNELS: Dict[str, Callable[..., DeliveryChannel]] = {
    "smtp": SmtpChannel,
    "webhook": WebhookChannel,
    "telegram": TelegramBotChannel,
    "log": LogChannel,
}


def build_channel(options: NotifierOptions) -> DeliveryChannel:
    """Return the channel for ``options.delivery_method`` with its settings."""

    method = (options.delivery_method or "smtp").lower()
    factory = CHANNELS.get(method)
    if factory is None:
        raise ValueError(
            f"Unsupported delivery_method: {method} (expected one of {', '.join(sorted(CHANNELS))})"
        )
    LOGGER.debug("Selected delivery method - %s", method)
    return factory(options.delivery_settings)
