"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for throttle storage and delivery
channels so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import timedelta
from typing import ContextManager, Optional, Protocol

from core.models import NotificationPayload, ThrottleRecord


class ThrottleStorePort(Protocol):
    """Durable per-fingerprint record storage.

    Implementations raise ``StorageFailure`` on I/O errors.
    """

    def lock(self, fingerprint: str) -> ContextManager[None]:
        """Hold exclusive access to the fingerprint across load/decide/save."""
        ...

    def load(self, fingerprint: str) -> Optional[ThrottleRecord]:
        ...

    def save(self, fingerprint: str, record: ThrottleRecord) -> None:
        ...

    def age(self, fingerprint: str) -> timedelta:
        """Time since the window started; ``timedelta.max`` when no record exists."""
        ...


class DeliveryChannel(Protocol):
    """Sink able to transmit a composed notification."""

    name: str

    def deliver(self, payload: NotificationPayload) -> Optional[str]:
        """Send the payload and return an optional transport detail.

        Transport errors are raised as ``DeliveryFailure``; channels never retry.
        """
        ...


class TrackerPort(Protocol):
    """Receives the persisted record document of admitted occurrences."""

    def submit(self, api_url: str, api_key: str, fingerprint: str, document: dict) -> None:
        ...
