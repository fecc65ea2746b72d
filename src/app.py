"""Command line entry point for the exception notifier."""

from __future__ import annotations

import argparse
import logging
import os
from datetime import date
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from rich.console import Console
from rich.table import Table

import settings
from adapters.channel_factory import build_channel
from adapters.file_throttle_store import FileThrottleStore
from adapters.tracker_client import HttpTrackerClient
from core.config import NotifierOptions
from core.errors import DeliveryFailure, StorageFailure
from core.models import Occurrence, Suppressed
from core.processor import ExceptionNotifier

NAME = "EXNOTIFY"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


# Environment variables and delivery_settings keys whose values never reach a log line.
SECRET_ENV_VARS = ("SMTP_PASSWORD", "WEBHOOK_TOKEN", "BOT_API", "TRACKER_API_KEY")
SECRET_SETTING_KEYS = ("password", "token", "bot_token")


class _RedactingFormatter(logging.Formatter):
    """Mask known secret values in every formatted record, tracebacks included."""

    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first, so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict, options: Optional[NotifierOptions] = None) -> list[str]:
    """Secret values from the environment and from the configured channel settings."""

    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []

    values = [os.getenv(name) for name in redact_cfg.get("patterns", SECRET_ENV_VARS)]
    if options is not None:
        values.append(options.api_key)
        values.extend(options.delivery_settings.get(key) for key in SECRET_SETTING_KEYS)
    return sorted({str(value) for value in values if value}, key=len, reverse=True)


def _log_handlers(config: dict, level: int, formatter: logging.Formatter) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "log/exnotify.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = _RedactingFormatter(
        _collect_redaction_values(config, settings.DEFAULT_OPTIONS),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers = _log_handlers(config, level, formatter)
    if handlers:
        logging.basicConfig(level=level, handlers=handlers)


def build_notifier(storage_root: Optional[str] = None) -> ExceptionNotifier:
    """Wire the file store, channel factory and tracker from settings."""

    store = FileThrottleStore(storage_root or settings.STORAGE_ROOT)
    return ExceptionNotifier(
        store=store,
        channel_factory=build_channel,
        defaults=settings.DEFAULT_OPTIONS,
        tracker=HttpTrackerClient(),
    )


def _status(day: Optional[str]) -> None:
    store = FileThrottleStore(settings.STORAGE_ROOT)
    selected = date.fromisoformat(day) if day else None
    records = store.list_records(selected)

    table = Table(title=f"Throttle records ({day or 'today'})")
    table.add_column("Window start")
    table.add_column("Count", justify="right")
    table.add_column("Subject")
    table.add_column("Line")
    for _, record in records:
        table.add_row(
            record.window_started_at.astimezone().strftime("%H:%M:%S %d-%m-%Y"),
            str(record.count),
            record.subject,
            record.representative_line,
        )
    Console().print(table)
    if not records:
        print("No throttle records for this day.")


def _send_test(message: str) -> int:
    logger = logging.getLogger(__name__)
    notifier = build_notifier()
    try:
        raise RuntimeError(message)
    except RuntimeError as exc:
        occurrence = Occurrence.from_exception(exc, data={"source": "exnotify test"})

    try:
        outcome = notifier.notify(occurrence)
    except (StorageFailure, DeliveryFailure):
        logger.exception("Test notification failed")
        return 1

    if isinstance(outcome, Suppressed):
        logger.info("Test notification suppressed (%s/%s)", outcome.count, outcome.count_limit)
    else:
        logger.info("Test notification delivered via %s", outcome.channel)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="exnotify")
    subparsers = parser.add_subparsers(dest="command")

    status_parser = subparsers.add_parser("status", help="Show throttle records for a day")
    status_parser.add_argument("--day", help="Day as YYYY-MM-DD (default: today, UTC)")
    test_parser = subparsers.add_parser("test", help="Send a test notification through the pipeline")
    test_parser.add_argument("--message", default="exnotify test notification")

    args = parser.parse_args(argv)
    _print_banner()
    _configure_logging()

    if args.command == "test":
        return _send_test(args.message)
    _status(getattr(args, "day", None))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
