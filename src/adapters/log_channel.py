"""Log delivery channel.

Writes the rendered notification to a logger instead of a remote transport.
Useful for development and tests; delivered payloads are kept in memory.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from adapters.notification_formatting import format_text
from core.models import NotificationPayload


class LogChannel:
    """Channel that logs notifications and remembers what it sent."""

    name = "log"

    def __init__(self, settings: Optional[Mapping[str, Any]] = None) -> None:
        settings = dict(settings or {})
        self._logger = logging.getLogger(settings.get("logger", __name__))
        level_name = str(settings.get("level", "WARNING")).upper()
        self._level = getattr(logging, level_name, logging.WARNING)
        self.delivered: list[NotificationPayload] = []

    def deliver(self, payload: NotificationPayload) -> Optional[str]:
        self._logger.log(
            self._level,
            "%s\nTo: %s\n\n%s",
            payload.subject,
            ", ".join(payload.recipients) or "-",
            format_text(payload),
        )
        self.delivered.append(payload)
        return None
