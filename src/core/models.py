"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any host framework or transport-specific types.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple


@dataclass(frozen=True)
class RequestInfo:
    """Interactive request details supplied by the host framework."""

    url: str
    http_method: str
    remote_ip: Optional[str] = None
    parameters: Mapping[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None
    session: Mapping[str, Any] = field(default_factory=dict)
    environment: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CorrelationContext:
    """Optional host context for an occurrence.

    ``options`` and ``data`` are the environment-level layers: they sit between
    the process defaults and the per-call overrides.
    """

    controller_name: Optional[str] = None
    action_name: Optional[str] = None
    request: Optional[RequestInfo] = None
    options: Mapping[str, Any] = field(default_factory=dict)
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> Optional[str]:
        if self.controller_name and self.action_name:
            return f"{self.controller_name}#{self.action_name}"
        return None


@dataclass(frozen=True)
class Occurrence:
    """A single raised error as seen by the notifier."""

    exception_type: str
    message: str
    frames: Tuple[str, ...] = ()
    context: Optional[CorrelationContext] = None
    data: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        context: Optional[CorrelationContext] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> "Occurrence":
        """Build an occurrence from a live exception and its traceback."""

        frames = tuple(
            f"{frame.filename}:{frame.lineno}:in {frame.name}"
            for frame in traceback.extract_tb(exc.__traceback__)
        )
        return cls(
            exception_type=type(exc).__name__,
            message=str(exc),
            frames=frames,
            context=context,
            data=dict(data or {}),
        )

    @property
    def is_background(self) -> bool:
        """True when the error did not originate from an interactive request."""

        return self.context is None or self.context.request is None

    def merged_data(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        if self.context is not None:
            merged.update(self.context.data)
        merged.update(self.data)
        return merged


@dataclass(frozen=True)
class ThrottleRecord:
    """Persisted counter state for one fingerprint.

    ``window_started_at`` is not part of the stored document; stores derive it
    from the record's last-modified time.
    """

    count: int
    subject: str
    sample_frames: Tuple[str, ...]
    representative_line: str
    window_started_at: datetime

    def to_document(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "subject": self.subject,
            "backtrace": list(self.sample_frames),
            "representative_line": self.representative_line,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any], window_started_at: datetime) -> "ThrottleRecord":
        return cls(
            count=int(document["count"]),
            subject=str(document["subject"]),
            sample_frames=tuple(str(frame) for frame in document.get("backtrace", [])),
            representative_line=str(document.get("representative_line", "")),
            window_started_at=window_started_at,
        )


@dataclass(frozen=True)
class Section:
    """One named block of a notification body."""

    name: str
    lines: Tuple[str, ...]


@dataclass(frozen=True)
class NotificationPayload:
    """Composed notification, built fresh for each admitted occurrence."""

    fingerprint: str
    subject: str
    sender: str
    recipients: Tuple[str, ...]
    sections: Tuple[Section, ...]
    headers: Mapping[str, str]
    template_name: str
    email_format: str = "text"


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a successful delivery."""

    channel: str
    fingerprint: str
    subject: str
    recipients: Tuple[str, ...]
    delivered_at: datetime
    detail: Optional[str] = None
    tracker_error: Optional[str] = None


@dataclass(frozen=True)
class Suppressed:
    """Throttling denied the occurrence. This is a normal outcome, not an error."""

    fingerprint: str
    subject: str
    count: int
    count_limit: int
