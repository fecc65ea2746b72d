"""HTTP webhook delivery channel.

Posts the payload as JSON. Settings: url, headers, token, timeout. The URL
and token fall back to WEBHOOK_URL / WEBHOOK_TOKEN from the environment.
"""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from typing import Any, Mapping, Optional

from adapters.notification_formatting import payload_to_dict
from core.errors import DeliveryFailure
from core.models import NotificationPayload


def post_json(url: str, body: Mapping[str, Any], headers: Mapping[str, str], timeout: float) -> int:
    """POST a JSON document and return the HTTP status.

    HTTP errors are re-raised as RuntimeError carrying the response body.
    """

    data = json.dumps(body).encode("utf-8")
    request = urllib.request.Request(url, data=data, method="POST")
    request.add_header("Content-Type", "application/json")
    for name, value in headers.items():
        request.add_header(name, value)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return response.status
    except urllib.error.HTTPError as e:
        body_text = e.read().decode("utf-8", errors="replace")
        raise RuntimeError(f"HTTP error {e.code}: {body_text}") from e


class WebhookChannel:
    """Deliver notifications to an HTTP endpoint."""

    name = "webhook"

    def __init__(self, settings: Optional[Mapping[str, Any]] = None) -> None:
        settings = dict(settings or {})
        self.url = settings.get("url") or os.getenv("WEBHOOK_URL")
        self.token = settings.get("token") or os.getenv("WEBHOOK_TOKEN")
        self.headers = dict(settings.get("headers") or {})
        self.timeout = float(settings.get("timeout", 10))

    def deliver(self, payload: NotificationPayload) -> Optional[str]:
        if not self.url:
            raise DeliveryFailure(self.name, "no webhook url configured")

        headers = dict(self.headers)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            status = post_json(self.url, payload_to_dict(payload), headers, self.timeout)
        except (RuntimeError, urllib.error.URLError, OSError) as exc:
            raise DeliveryFailure(self.name, str(exc)) from exc
        return f"HTTP {status}"
