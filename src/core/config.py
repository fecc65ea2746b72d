"""Core configuration dataclasses.

We keep config loading outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely. Options
are resolved once per call by layering mappings over the defaults:

    defaults < environment options < per-call overrides
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Union

DEFAULT_SECTIONS = ("request", "session", "environment", "backtrace")
DEFAULT_BACKGROUND_SECTIONS = ("backtrace", "data")
EMAIL_FORMATS = ("text", "html")

Recipients = Union[Sequence[str], Callable[[], Sequence[str]]]


@dataclass(frozen=True)
class ThrottleConfig:
    """Fixed-window limits applied per fingerprint."""

    count_limit: int = 5
    window_duration: timedelta = timedelta(minutes=30)


@dataclass(frozen=True)
class NotifierOptions:
    """Every option recognized by the notifier, with its default."""

    sender_address: str = '"Exception Notifier" <exception.notifier@example.com>'
    exception_recipients: Recipients = ()
    email_prefix: str = "[ERROR] "
    email_format: str = "text"
    sections: Tuple[str, ...] = DEFAULT_SECTIONS
    background_sections: Tuple[str, ...] = DEFAULT_BACKGROUND_SECTIONS
    verbose_subject: bool = True
    normalize_subject: bool = False
    include_controller_and_action_names_in_subject: bool = True
    accumulated_errors_count: int = 0
    delivery_method: str = "smtp"
    delivery_settings: Mapping[str, Any] = field(default_factory=dict)
    email_headers: Mapping[str, str] = field(default_factory=dict)
    count_limit: int = 5
    window_duration: timedelta = timedelta(minutes=30)
    api_url: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def throttle(self) -> ThrottleConfig:
        return ThrottleConfig(count_limit=self.count_limit, window_duration=self.window_duration)

    def recipients(self) -> Tuple[str, ...]:
        """Return the recipient list, calling the resolver when one is configured."""

        value = self.exception_recipients
        if callable(value):
            value = value()
        if isinstance(value, str):
            value = [value]
        return tuple(r for r in (value or ()) if r)


_OPTION_NAMES = frozenset(f.name for f in fields(NotifierOptions))


def _coerce(name: str, value: Any) -> Any:
    if name == "window_duration" and not isinstance(value, timedelta):
        return timedelta(seconds=float(value))
    if name in {"sections", "background_sections"}:
        return tuple(value)
    if name in {"count_limit", "accumulated_errors_count"}:
        return int(value)
    if name in {"delivery_settings", "email_headers"}:
        return dict(value or {})
    return value


def _normalize_layer(layer: Mapping[str, Any], delivery_method: str) -> dict[str, Any]:
    """Map a raw options layer onto NotifierOptions field names."""

    method = layer.get("delivery_method", delivery_method)
    normalized: dict[str, Any] = {}
    for name, value in layer.items():
        if name == f"{method}_settings":
            # Mailer-style alias, e.g. smtp_settings for delivery_method=smtp.
            normalized["delivery_settings"] = _coerce("delivery_settings", value)
            continue
        if name.endswith("_settings") and name != "delivery_settings":
            # Settings for a transport that is not selected by this layer.
            continue
        if name not in _OPTION_NAMES:
            raise ValueError(f"Unknown notifier option: {name}")
        normalized[name] = _coerce(name, value)
    return normalized


def _validate(options: NotifierOptions) -> NotifierOptions:
    if options.count_limit < 1:
        raise ValueError("count_limit must be at least 1")
    if options.window_duration <= timedelta(0):
        raise ValueError("window_duration must be positive")
    if options.email_format not in EMAIL_FORMATS:
        raise ValueError(f"Unsupported email_format: {options.email_format}")
    return options


def resolve_options(
    defaults: NotifierOptions,
    *layers: Optional[Mapping[str, Any]],
) -> NotifierOptions:
    """Return defaults with each layer applied in order (later layers win)."""

    resolved = defaults
    for layer in layers:
        if not layer:
            continue
        resolved = replace(resolved, **_normalize_layer(layer, resolved.delivery_method))
    return _validate(resolved)


def options_from_config(raw: Optional[Mapping[str, Any]]) -> NotifierOptions:
    """Build process-wide defaults from a flat config mapping."""

    return resolve_options(NotifierOptions(), raw)
