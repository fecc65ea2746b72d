"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from email.message import EmailMessage
from typing import Any, Optional

from core.models import NotificationPayload, Section

DIVIDER = "──────────────"
ELLIPSIS = "..."


def _title(section: Section) -> str:
    return section.name.replace("_", " ").title()


def format_text(payload: NotificationPayload) -> str:
    """Create the plain-text body used by mail, logs and chat channels."""

    lines: list[str] = []
    for index, section in enumerate(payload.sections):
        if index == 0 and section.name == "summary":
            lines.extend(section.lines)
            continue
        lines.extend(["", DIVIDER, _title(section), DIVIDER, ""])
        lines.extend(f"  {line}" for line in section.lines)
    return "\n".join(lines)


def format_html(payload: NotificationPayload) -> str:
    """Create an HTML body with one heading per section."""

    parts = [f"<h1>{html.escape(payload.subject)}</h1>"]
    for section in payload.sections:
        if section.name == "summary":
            parts.append("<p>" + "<br>".join(html.escape(line) for line in section.lines) + "</p>")
            continue
        parts.append(f"<h2>{html.escape(_title(section))}</h2>")
        body = "\n".join(html.escape(line) for line in section.lines)
        parts.append(f"<pre>{body}</pre>")
    return "\n".join(parts)


def _cut_escaped(line: str, size: int) -> str:
    """Cut an escaped line to ``size`` without leaving half an entity behind."""

    cut = line[:size]
    amp = cut.rfind("&")
    if amp != -1 and ";" not in cut[amp:]:
        cut = cut[:amp]
    return cut


def _fit_lines(lines: list[str], limit: int) -> str:
    budget = limit - len(ELLIPSIS) - 1
    kept: list[str] = []
    used = 0
    for line in lines:
        separator = 1 if kept else 0
        if used + separator + len(line) <= budget:
            kept.append(line)
            used += separator + len(line)
            continue
        room = budget - used - separator
        # Markup lines are kept whole or not at all.
        if room > 0 and not line.startswith("<b>"):
            kept.append(_cut_escaped(line, room))
        break
    kept.append(ELLIPSIS)
    return "\n".join(kept)


def format_telegram_html(payload: NotificationPayload, limit: Optional[int] = None) -> str:
    """Create the compact HTML subset accepted by the Telegram Bot API.

    With ``limit`` the message is cut on line boundaries (never inside a tag
    or an escaped entity) and ends with ``...``.
    """

    lines = [f"<b>{html.escape(payload.subject)}</b>", DIVIDER]
    for section in payload.sections:
        if section.name != "summary":
            lines.extend(["", f"<b>{html.escape(_title(section))}:</b>"])
        lines.extend(html.escape(line) for line in section.lines)
    lines.append(DIVIDER)
    text = "\n".join(lines)
    if limit is None or len(text) <= limit:
        return text
    return _fit_lines(lines, limit)


def build_email(payload: NotificationPayload) -> EmailMessage:
    """Return a MIME message with a text part and, for html format, an HTML alternative."""

    message = EmailMessage()
    message["Subject"] = payload.subject
    message["From"] = payload.sender
    message["To"] = ", ".join(payload.recipients)
    message["X-Exception-Notifier-Template"] = payload.template_name
    for name, value in payload.headers.items():
        if name in message:
            del message[name]
        message[name] = value
    message.set_content(format_text(payload))
    if payload.email_format == "html":
        message.add_alternative(format_html(payload), subtype="html")
    return message


def payload_to_dict(payload: NotificationPayload) -> dict[str, Any]:
    """JSON-ready representation used by webhook channels."""

    return {
        "fingerprint": payload.fingerprint,
        "subject": payload.subject,
        "sender": payload.sender,
        "recipients": list(payload.recipients),
        "template": payload.template_name,
        "headers": dict(payload.headers),
        "sections": [{"name": section.name, "lines": list(section.lines)} for section in payload.sections],
        "text": format_text(payload),
    }
