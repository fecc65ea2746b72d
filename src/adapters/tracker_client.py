"""Error tracker client.

Forwards the persisted throttle record of admitted occurrences to an
external tracker API. The API key is sent as a bearer token.
"""

from __future__ import annotations

from adapters.webhook_channel import post_json


class HttpTrackerClient:
    """TrackerPort implementation backed by a JSON POST."""

    def __init__(self, timeout: float = 5) -> None:
        self._timeout = timeout

    def submit(self, api_url: str, api_key: str, fingerprint: str, document: dict) -> None:
        body = dict(document, fingerprint=fingerprint)
        post_json(api_url, body, {"Authorization": f"Bearer {api_key}"}, self._timeout)
