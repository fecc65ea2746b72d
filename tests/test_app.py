from __future__ import annotations

import logging

import app
from core.config import NotifierOptions


def test_redaction_collects_environment_and_channel_secrets(monkeypatch) -> None:
    for name in app.SECRET_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SMTP_PASSWORD", "env-secret")
    options = NotifierOptions(
        delivery_settings={"user_name": "alerts", "password": "smtp-pass"},
        api_key="tracker-key",
    )

    values = app._collect_redaction_values({}, options)

    assert set(values) == {"env-secret", "smtp-pass", "tracker-key"}
    assert "alerts" not in values


def test_redaction_can_be_disabled(monkeypatch) -> None:
    monkeypatch.setenv("SMTP_PASSWORD", "env-secret")
    assert app._collect_redaction_values({"redact": {"enabled": False}}, NotifierOptions(api_key="k")) == []


def test_formatter_masks_longest_secret_first() -> None:
    formatter = app._RedactingFormatter(["abc", "abcdef"], fmt="%(message)s")
    record = logging.LogRecord("exnotify", logging.INFO, __file__, 1, "login abcdef then abc", None, None)
    assert formatter.format(record) == "login *** then ***"
