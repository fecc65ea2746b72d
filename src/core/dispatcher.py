"""Send composed payloads through a delivery channel."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from core.errors import DeliveryFailure
from core.models import DeliveryResult, NotificationPayload
from core.ports import DeliveryChannel

LOGGER = logging.getLogger(__name__)


def channel_name(channel: DeliveryChannel) -> str:
    """Return the channel's ``name`` or its class name without a ``Channel`` suffix."""

    name = getattr(channel, "name", None)
    if name:
        return name
    cls_name = type(channel).__name__
    if cls_name.endswith("Channel"):
        cls_name = cls_name[: -len("Channel")]
    return cls_name


class Dispatcher:
    """Deliver payloads through one channel, without retries."""

    def __init__(
        self,
        channel: DeliveryChannel,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._channel = channel
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def deliver(self, payload: NotificationPayload) -> DeliveryResult:
        name = channel_name(self._channel)
        try:
            detail = self._channel.deliver(payload)
        except DeliveryFailure:
            LOGGER.error("Delivery via %s failed for %r", name, payload.subject)
            raise
        except Exception as exc:
            LOGGER.error("Delivery via %s failed for %r: %s", name, payload.subject, exc)
            raise DeliveryFailure(name, f"{exc.__class__.__name__}: {exc}") from exc

        LOGGER.info("Delivered %r via %s to %s recipient(s)", payload.subject, name, len(payload.recipients))
        return DeliveryResult(
            channel=name,
            fingerprint=payload.fingerprint,
            subject=payload.subject,
            recipients=payload.recipients,
            delivered_at=self._clock(),
            detail=detail,
        )
