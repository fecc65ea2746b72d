"""Notification composition (core domain).

Builds the in-memory payload for an admitted occurrence. Rendering the body
into text or HTML is left to the delivery adapters.
"""

from __future__ import annotations

import logging
import os
import socket
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from core.config import NotifierOptions, resolve_options
from core.fingerprint import Fingerprint
from core.models import NotificationPayload, Occurrence, Section, ThrottleRecord

LOGGER = logging.getLogger(__name__)

INSPECT_LIMIT = 300


def _truncate(text: str, limit: int) -> str:
    return f"{text[:limit]}..." if len(text) > limit else text


def safe_encode(value: str) -> str:
    """Replace anything that cannot be encoded as UTF-8."""

    return value.encode("utf-8", errors="replace").decode("utf-8")


def inspect_object(value: Any) -> str:
    if isinstance(value, (Mapping, list, tuple, set)):
        return _truncate(repr(value), INSPECT_LIMIT)
    return safe_encode(str(value))


def _mapping_lines(mapping: Mapping[str, Any]) -> tuple[str, ...]:
    return tuple(f"{key}: {inspect_object(mapping[key])}" for key in sorted(mapping, key=str))


class NotificationComposer:
    """Resolve options and compose payloads for admitted occurrences."""

    def __init__(
        self,
        defaults: NotifierOptions,
        clock: Callable[[], datetime],
        hostname: Optional[str] = None,
    ) -> None:
        self._defaults = defaults
        self._clock = clock
        self._hostname = hostname or socket.gethostname()

    def resolve(
        self, occurrence: Occurrence, overrides: Optional[Mapping[str, Any]] = None
    ) -> NotifierOptions:
        """Merge defaults, environment options and overrides (later wins)."""

        env_options = occurrence.context.options if occurrence.context is not None else None
        return resolve_options(self._defaults, env_options, overrides)

    def compose(
        self,
        occurrence: Occurrence,
        options: NotifierOptions,
        fingerprint: Fingerprint,
        record: ThrottleRecord,
    ) -> NotificationPayload:
        data = occurrence.merged_data()
        if occurrence.is_background:
            section_names = list(options.background_sections)
            template_name = "background_exception_notification"
        else:
            section_names = list(options.sections)
            template_name = "exception_notification"
        if data and "data" not in section_names:
            section_names.append("data")

        sections: List[Section] = [self._summary(occurrence, options, fingerprint, record)]
        for name in section_names:
            sections.extend(self._section(name, occurrence, fingerprint, data))

        return NotificationPayload(
            fingerprint=fingerprint.key,
            subject=fingerprint.subject,
            sender=options.sender_address,
            recipients=options.recipients(),
            sections=tuple(sections),
            headers=dict(options.email_headers),
            template_name=template_name,
            email_format=options.email_format,
        )

    def _summary(
        self,
        occurrence: Occurrence,
        options: NotifierOptions,
        fingerprint: Fingerprint,
        record: ThrottleRecord,
    ) -> Section:
        label = occurrence.context.label if occurrence.context is not None else None
        where = f" in {label}" if label else ""
        article = "An" if occurrence.exception_type[:1].upper() in ("A", "E", "I", "O", "U") else "A"
        lines = [
            f"{article} {occurrence.exception_type} occurred{where}:",
            f"  {safe_encode(occurrence.message)}",
        ]
        if fingerprint.representative_line:
            lines.append(f"  {fingerprint.representative_line}")
        lines.append(
            f"Notification {record.count + 1} of {options.count_limit} "
            f"in the current {int(options.window_duration.total_seconds() // 60)} minute window"
        )
        return Section(name="summary", lines=tuple(lines))

    def _section(
        self,
        name: str,
        occurrence: Occurrence,
        fingerprint: Fingerprint,
        data: Mapping[str, Any],
    ) -> List[Section]:
        request = occurrence.context.request if occurrence.context is not None else None

        if name == "backtrace":
            frames = occurrence.frames if occurrence.is_background else fingerprint.sample_frames
            return [Section(name="backtrace", lines=tuple(str(frame) for frame in frames))]
        if name == "data":
            return [Section(name=str(key), lines=(inspect_object(data[key]),)) for key in data]
        if name in {"request", "session", "environment"}:
            if request is None:
                LOGGER.debug("Skipping %s section for background occurrence", name)
                return []
            if name == "request":
                lines = (
                    f"URL: {request.url}",
                    f"HTTP Method: {request.http_method}",
                    f"IP address: {request.remote_ip or ''}",
                    f"Parameters: {inspect_object(dict(request.parameters))}",
                    f"Timestamp: {self._clock().isoformat()}",
                    f"Server: {self._hostname}",
                    f"Process: {os.getpid()}",
                )
            elif name == "session":
                lines = (
                    f"session id: {request.session_id or ''}",
                    f"data: {inspect_object(dict(request.session))}",
                )
            else:
                lines = _mapping_lines(request.environment)
            return [Section(name=name, lines=lines)]
        if name in data:
            return [Section(name=name, lines=(inspect_object(data[name]),))]

        LOGGER.debug("No content for section %s", name)
        return []
