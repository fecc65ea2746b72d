from __future__ import annotations

import os
import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from adapters import file_throttle_store
from adapters.file_throttle_store import FileThrottleStore, decode_fingerprint, encode_fingerprint
from core.errors import StorageFailure
from core.models import ThrottleRecord

START = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _record(count: int = 0, started: datetime = START) -> ThrottleRecord:
    return ThrottleRecord(
        count=count,
        subject='[ERROR]  (KeyError) "missing"',
        sample_frames=("/srv/app/a.py:1:in run",),
        representative_line="a.py:1:in run",
        window_started_at=started,
    )


def test_encoding_is_reversible_for_short_keys() -> None:
    name = encode_fingerprint('[ERROR]  (KeyError) "missing"')
    assert "/" not in name
    assert decode_fingerprint(name) == '[ERROR]  (KeyError) "missing"'


def test_long_keys_use_hashed_names() -> None:
    name = encode_fingerprint("é" * 120)
    assert name.startswith("h-")
    assert len(name) < 255
    assert decode_fingerprint(name) is None


def test_missing_root_is_created_lazily(tmp_path) -> None:
    root = tmp_path / "does" / "not" / "exist"
    store = FileThrottleStore(str(root), clock=FakeClock(START))
    assert store.load("KeyError") is None
    assert (root / "2024-03-05").is_dir()


def test_missing_record_is_infinitely_aged(tmp_path) -> None:
    store = FileThrottleStore(str(tmp_path), clock=FakeClock(START))
    assert store.age("KeyError") == timedelta.max


def test_save_then_load_uses_mtime_as_window_start(tmp_path) -> None:
    clock = FakeClock(START)
    store = FileThrottleStore(str(tmp_path), clock=clock)
    store.save("KeyError", _record(count=3))

    clock.advance(minutes=7)
    loaded = store.load("KeyError")
    assert loaded == _record(count=3)
    assert store.age("KeyError") == timedelta(minutes=7)

    path = tmp_path / "2024-03-05" / f"{encode_fingerprint('KeyError')}.json"
    assert path.is_file()
    assert not [name for name in os.listdir(path.parent) if name.endswith(".tmp")]


def test_records_are_partitioned_by_day(tmp_path) -> None:
    clock = FakeClock(START)
    store = FileThrottleStore(str(tmp_path), clock=clock)
    store.save("KeyError", _record())
    clock.advance(days=2)
    assert store.load("KeyError") is None
    assert store.age("KeyError") == timedelta.max
    assert len(store.list_records(START.date())) == 1


def test_yesterdays_record_is_carried_past_midnight(tmp_path) -> None:
    late = datetime(2024, 3, 5, 23, 50, tzinfo=timezone.utc)
    clock = FakeClock(late)
    store = FileThrottleStore(str(tmp_path), clock=clock)
    store.save("KeyError", _record(count=2, started=late))

    clock.advance(minutes=15)
    assert store.load("KeyError") == _record(count=2, started=late)
    assert store.age("KeyError") == timedelta(minutes=15)

    store.save("KeyError", _record(count=3, started=late))
    assert store.list_records(date(2024, 3, 6)) == [("KeyError", _record(count=3, started=late))]
    assert store.load("KeyError").window_started_at == late


def test_lock_pins_directories_across_midnight(tmp_path) -> None:
    late = datetime(2024, 3, 5, 23, 59, 59, tzinfo=timezone.utc)
    clock = FakeClock(late)
    store = FileThrottleStore(str(tmp_path), clock=clock)

    with store.lock("KeyError"):
        assert store.load("KeyError") is None
        clock.advance(seconds=2)
        store.save("KeyError", _record(started=late))

    assert len(store.list_records(date(2024, 3, 5))) == 1
    assert store.list_records(date(2024, 3, 6)) == []
    # Outside the lock the clock's day applies again; the record is carried.
    assert store.load("KeyError") == _record(started=late)


def test_corrupted_record_is_treated_as_absent(tmp_path) -> None:
    store = FileThrottleStore(str(tmp_path), clock=FakeClock(START))
    day_dir = tmp_path / "2024-03-05"
    day_dir.mkdir()
    (day_dir / f"{encode_fingerprint('KeyError')}.json").write_text("{not json", encoding="utf-8")
    assert store.load("KeyError") is None


def test_write_errors_raise_storage_failure(tmp_path, monkeypatch) -> None:
    store = FileThrottleStore(str(tmp_path), clock=FakeClock(START))

    def broken_replace(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(file_throttle_store.os, "replace", broken_replace)
    with pytest.raises(StorageFailure) as excinfo:
        store.save("KeyError", _record())
    assert excinfo.value.fingerprint == "KeyError"
    assert not [name for name in os.listdir(tmp_path / "2024-03-05") if name.endswith(".tmp")]


def test_unwritable_root_raises_storage_failure(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = FileThrottleStore(str(blocker / "root"), clock=FakeClock(START))
    with pytest.raises(StorageFailure):
        store.load("KeyError")


def test_list_records_returns_decoded_fingerprints(tmp_path) -> None:
    store = FileThrottleStore(str(tmp_path), clock=FakeClock(START))
    store.save("KeyError", _record(count=1))
    store.save("ValueError", _record(count=2, started=START - timedelta(minutes=5)))
    records = store.list_records()
    assert [fingerprint for fingerprint, _ in records] == ["ValueError", "KeyError"]
    assert [record.count for _, record in records] == [2, 1]


def test_lock_serializes_read_modify_write(tmp_path) -> None:
    store = FileThrottleStore(str(tmp_path), clock=FakeClock(START))
    store.save("KeyError", _record(count=0))

    def bump() -> None:
        for _ in range(10):
            with store.lock("KeyError"):
                current = store.load("KeyError")
                store.save("KeyError", _record(count=current.count + 1))

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.load("KeyError").count == 80
