"""Core notification pipeline.

This module is integration-agnostic. It only relies on ports for throttle
storage and delivery, so hosts can plug in any store or channel.

The pipeline enforces a strict order:
1) Resolve options (defaults < environment < overrides)
2) Build the delivery channel
3) Derive the fingerprint
4) Under the per-fingerprint lock: load, decide, save
5) Suppressed occurrences stop here
6) Compose the payload and deliver it
7) Optionally forward the record to an error tracker
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from core.composer import NotificationComposer
from core.config import NotifierOptions
from core.dispatcher import Dispatcher
from core.errors import DeliveryFailure, StorageFailure
from core.fingerprint import Fingerprint, build_fingerprint
from core.models import DeliveryResult, Occurrence, Suppressed, ThrottleRecord
from core.ports import DeliveryChannel, ThrottleStorePort, TrackerPort
from core.throttle import Decision, decide

LOGGER = logging.getLogger(__name__)

ChannelFactory = Callable[[NotifierOptions], DeliveryChannel]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExceptionNotifier:
    """Orchestrates fingerprinting, throttling, composition and delivery."""

    def __init__(
        self,
        store: ThrottleStorePort,
        channel_factory: ChannelFactory,
        defaults: Optional[NotifierOptions] = None,
        tracker: Optional[TrackerPort] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._channel_factory = channel_factory
        self._tracker = tracker
        self._clock = clock
        self._composer = NotificationComposer(defaults or NotifierOptions(), clock)

    def notify(
        self,
        occurrence: Occurrence,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Union[DeliveryResult, Suppressed]:
        """Throttle, compose and deliver one occurrence.

        Raises ``StorageFailure`` when the throttle state cannot be read or
        written (nothing is delivered) and ``DeliveryFailure`` when the channel
        cannot be built or fails. An unusable channel is reported before the
        occurrence is counted.
        """

        resolved = self._composer.resolve(occurrence, options)
        channel = self._channel(resolved)
        fingerprint = build_fingerprint(occurrence, resolved)
        decision = self._record(fingerprint, resolved)

        if not decision.admit:
            LOGGER.info(
                "Suppressed %r (%s occurrences in window, limit %s)",
                fingerprint.key,
                decision.record.count + 1,
                resolved.count_limit,
            )
            return Suppressed(
                fingerprint=fingerprint.key,
                subject=fingerprint.subject,
                count=decision.record.count,
                count_limit=resolved.count_limit,
            )

        payload = self._composer.compose(occurrence, resolved, fingerprint, decision.record)
        result = Dispatcher(channel, self._clock).deliver(payload)

        if self._tracker is not None and resolved.api_url and resolved.api_key:
            result = self._forward(resolved, fingerprint, decision.record, result)
        return result

    def _channel(self, options: NotifierOptions) -> DeliveryChannel:
        """Build the channel before any throttle state is touched."""

        try:
            return self._channel_factory(options)
        except ValueError as exc:
            LOGGER.error("Cannot build delivery channel %r: %s", options.delivery_method, exc)
            raise DeliveryFailure(options.delivery_method or "unknown", str(exc)) from exc

    def _record(self, fingerprint: Fingerprint, options: NotifierOptions) -> Decision:
        """Run load -> decide -> save while holding the fingerprint lock."""

        observed = ThrottleRecord(
            count=0,
            subject=fingerprint.subject,
            sample_frames=fingerprint.sample_frames,
            representative_line=fingerprint.representative_line,
            window_started_at=self._clock(),
        )
        try:
            with self._store.lock(fingerprint.key):
                existing = self._store.load(fingerprint.key)
                age = self._store.age(fingerprint.key)
                decision = decide(existing, age, options.throttle, observed)
                self._store.save(fingerprint.key, decision.record)
        except StorageFailure:
            LOGGER.error("Throttle store unavailable for %r; notification not sent", fingerprint.key)
            raise
        return decision

    def _forward(
        self,
        options: NotifierOptions,
        fingerprint: Fingerprint,
        record: ThrottleRecord,
        result: DeliveryResult,
    ) -> DeliveryResult:
        try:
            self._tracker.submit(options.api_url, options.api_key, fingerprint.key, record.to_document())
        except Exception as exc:
            LOGGER.warning("Tracker submission failed for %r: %s", fingerprint.key, exc)
            return replace(result, tracker_error=f"{exc.__class__.__name__}: {exc}")
        return result
