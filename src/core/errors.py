"""Exception hierarchy for the notifier core."""

from __future__ import annotations


class NotifierError(Exception):
    """Base exception for notifier failures."""


class StorageFailure(NotifierError):
    """Raised when the throttle store cannot be read or written."""

    def __init__(self, fingerprint: str, reason: str):
        self.fingerprint = fingerprint
        self.reason = reason
        super().__init__(f"Throttle storage failed for {fingerprint!r}: {reason}")


class DeliveryFailure(NotifierError):
    """Raised when a delivery channel fails to send a payload."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Failed to deliver via {channel}: {reason}")


class MalformedOccurrence(NotifierError):
    """Raised when an occurrence carries unusable backtrace or type info."""
