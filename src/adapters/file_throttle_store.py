"""File-backed throttle store adapter.

Implements the core ThrottleStorePort with one JSON document per
(calendar day, fingerprint):

    <root>/<YYYY-MM-DD>/<name>.json
    <root>/<YYYY-MM-DD>/<name>.lock

The document's mtime is the window start. Writes go through a temp file
whose mtime is set before it is renamed over the target, so readers never
observe a partial document or a moved window start.

A window that opened yesterday is still live after UTC midnight. When today
has no document yet, reads fall back to yesterday's, and the next save
carries it into today's directory with its original window start. Windows
longer than one day are therefore cut at the second midnight.
"""

from __future__ import annotations

import base64
import binascii
import fcntl
import hashlib
import json
import logging
import os
import tempfile
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterator, Optional, Tuple

from core.errors import StorageFailure
from core.models import ThrottleRecord

LOGGER = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200
HASHED_PREFIX = "h-"


def encode_fingerprint(fingerprint: str) -> str:
    """Return the file name for a fingerprint (URL-safe base64, hashed when too long)."""

    encoded = base64.urlsafe_b64encode(fingerprint.encode("utf-8")).decode("ascii")
    if len(encoded) <= MAX_NAME_LENGTH:
        return encoded
    return HASHED_PREFIX + hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()


def decode_fingerprint(name: str) -> Optional[str]:
    """Reverse encode_fingerprint; hashed names return None."""

    if name.startswith(HASHED_PREFIX):
        return None
    try:
        return base64.urlsafe_b64decode(name.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Slot:
    """Today's and yesterday's directories for one fingerprint."""

    name: str
    current: str
    previous: str

    def record_path(self, directory: str) -> str:
        return os.path.join(directory, f"{self.name}.json")

    def lock_path(self, directory: str) -> str:
        return os.path.join(directory, f"{self.name}.lock")

    def live_path(self) -> str:
        """Today's document when present, else yesterday's, else today's (absent)."""

        current = self.record_path(self.current)
        if os.path.exists(current):
            return current
        previous = self.record_path(self.previous)
        if os.path.exists(previous):
            return previous
        return current


class FileThrottleStore:
    """Local-filesystem store that satisfies the ThrottleStorePort contract."""

    def __init__(self, root: str, clock: Callable[[], datetime] = _utc_now) -> None:
        self._root = root
        self._clock = clock
        self._held = threading.local()

    @property
    def root(self) -> str:
        return self._root

    def _today(self) -> date:
        return self._clock().astimezone(timezone.utc).date()

    def _day_dir(self, day: Optional[date] = None) -> str:
        return os.path.join(self._root, (day or self._today()).isoformat())

    def _slot(self, fingerprint: str) -> _Slot:
        # Inside lock() the slot is pinned, so a load/decide/save that runs
        # across midnight stays in the directories it locked.
        held = getattr(self._held, "slots", {})
        if fingerprint in held:
            return held[fingerprint]
        today = self._today()
        return _Slot(
            name=encode_fingerprint(fingerprint),
            current=self._day_dir(today),
            previous=self._day_dir(today - timedelta(days=1)),
        )

    def _ensure_dir(self, fingerprint: str, directory: str) -> None:
        try:
            # Concurrent occurrences may race to create the day directory.
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise StorageFailure(fingerprint, f"cannot create {directory}: {exc}") from exc

    @contextmanager
    def _flock(self, fingerprint: str, path: str) -> Iterator[None]:
        try:
            handle = open(path, "a")
        except OSError as exc:
            raise StorageFailure(fingerprint, f"cannot open lock file: {exc}") from exc
        try:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            except OSError as exc:
                raise StorageFailure(fingerprint, f"cannot acquire lock: {exc}") from exc
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    @contextmanager
    def lock(self, fingerprint: str) -> Iterator[None]:
        """Hold exclusive flocks on yesterday's and today's lock files.

        flock is taken on fresh open file descriptions, so it serializes
        threads of this process as well as other processes. Locks are always
        taken older day first, so callers on either side of midnight queue
        on the same file instead of deadlocking.
        """

        slot = self._slot(fingerprint)
        held = getattr(self._held, "slots", None)
        if held is None:
            held = self._held.slots = {}
        if fingerprint in held:
            # Re-entrant use from the same thread keeps the outer lock.
            yield
            return

        with ExitStack() as stack:
            for directory in (slot.previous, slot.current):
                self._ensure_dir(fingerprint, directory)
                stack.enter_context(self._flock(fingerprint, slot.lock_path(directory)))
            held[fingerprint] = slot
            try:
                yield
            finally:
                del held[fingerprint]

    def load(self, fingerprint: str) -> Optional[ThrottleRecord]:
        """Return the live record (today's, else yesterday's), or None."""

        slot = self._slot(fingerprint)
        self._ensure_dir(fingerprint, slot.current)
        return self._read(slot.live_path(), fingerprint)

    def _read(self, path: str, fingerprint: str) -> Optional[ThrottleRecord]:
        try:
            with open(path, "r", encoding="utf-8") as handle:
                document = json.load(handle)
                mtime_ns = os.fstat(handle.fileno()).st_mtime_ns
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            LOGGER.warning("Unreadable throttle record %s (%s); starting fresh", path, exc)
            return None
        except OSError as exc:
            raise StorageFailure(fingerprint, f"cannot read {path}: {exc}") from exc

        window_started_at = datetime.fromtimestamp(mtime_ns / 1e9, tz=timezone.utc)
        try:
            return ThrottleRecord.from_document(document, window_started_at)
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Invalid throttle record %s (%s); starting fresh", path, exc)
            return None

    def save(self, fingerprint: str, record: ThrottleRecord) -> None:
        """Atomically replace today's record and stamp its mtime with the window start."""

        slot = self._slot(fingerprint)
        directory = slot.current
        path = slot.record_path(directory)
        self._ensure_dir(fingerprint, directory)
        stamp_ns = int(record.window_started_at.timestamp() * 1_000_000) * 1000
        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=".",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_path = handle.name
                json.dump(record.to_document(), handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.utime(temp_path, ns=(stamp_ns, stamp_ns))
            os.replace(temp_path, path)
        except OSError as exc:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
            raise StorageFailure(fingerprint, f"cannot write {path}: {exc}") from exc

    def age(self, fingerprint: str) -> timedelta:
        """Time since the live record's window started; timedelta.max when absent."""

        path = self._slot(fingerprint).live_path()
        try:
            mtime_ns = os.stat(path).st_mtime_ns
        except FileNotFoundError:
            return timedelta.max
        except OSError as exc:
            raise StorageFailure(fingerprint, f"cannot stat {path}: {exc}") from exc
        started = datetime.fromtimestamp(mtime_ns / 1e9, tz=timezone.utc)
        return self._clock() - started

    def list_records(self, day: Optional[date] = None) -> list[Tuple[str, ThrottleRecord]]:
        """Return (fingerprint, record) pairs stored for a day, oldest window first."""

        directory = self._day_dir(day)
        try:
            names = sorted(os.listdir(directory))
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageFailure(directory, f"cannot list records: {exc}") from exc

        records = []
        for file_name in names:
            if not file_name.endswith(".json") or file_name.startswith("."):
                continue
            name = file_name[: -len(".json")]
            record = self._read(os.path.join(directory, file_name), name)
            if record is None:
                continue
            records.append((decode_fingerprint(name) or record.subject, record))
        records.sort(key=lambda item: item[1].window_started_at)
        return records
