"""SMTP delivery channel.

Transport settings follow the mailer convention (``smtp_settings``):
address, port, user_name, password, enable_starttls_auto, ssl, open_timeout.
Unset values fall back to SMTP_* environment variables.
"""

from __future__ import annotations

import os
import smtplib
import ssl
from typing import Any, Mapping, Optional

from adapters.notification_formatting import build_email
from core.errors import DeliveryFailure
from core.models import NotificationPayload


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


class SmtpChannel:
    """Deliver notifications as email over SMTP."""

    name = "smtp"

    def __init__(self, settings: Optional[Mapping[str, Any]] = None) -> None:
        settings = dict(settings or {})
        env = os.getenv
        self.host = settings.get("address") or env("SMTP_HOST", "127.0.0.1")
        self.port = int(settings.get("port") or env("SMTP_PORT", "25"))
        self.username = settings.get("user_name") or env("SMTP_USERNAME")
        self.password = settings.get("password") or env("SMTP_PASSWORD")
        self.use_starttls = _flag(settings.get("enable_starttls_auto", env("SMTP_STARTTLS", "false")))
        self.use_ssl = _flag(settings.get("ssl", settings.get("tls", env("SMTP_SSL", "false"))))
        self.timeout = float(settings.get("open_timeout") or env("SMTP_TIMEOUT_SEC", "5"))

    def deliver(self, payload: NotificationPayload) -> Optional[str]:
        if not payload.recipients:
            raise DeliveryFailure(self.name, "no recipients configured")
        if self.use_starttls and self.use_ssl:
            raise DeliveryFailure(self.name, "both ssl and enable_starttls_auto are enabled")

        message = build_email(payload)
        context = ssl.create_default_context()
        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as client:
                    self._send(client, payload, message)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
                    if self.use_starttls:
                        client.starttls(context=context)
                    self._send(client, payload, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryFailure(self.name, f"{exc.__class__.__name__}: {exc}") from exc
        return f"{self.host}:{self.port}"

    def _send(self, client, payload: NotificationPayload, message) -> None:
        if self.username and self.password:
            client.login(self.username, self.password)
        client.sendmail(payload.sender, list(payload.recipients), message.as_string())
