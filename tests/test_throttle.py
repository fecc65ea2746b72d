from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.config import ThrottleConfig
from core.models import ThrottleRecord
from core.throttle import decide

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
CONFIG = ThrottleConfig(count_limit=5, window_duration=timedelta(minutes=30))


def _record(count: int = 0, started: datetime = START) -> ThrottleRecord:
    return ThrottleRecord(
        count=count,
        subject="[ERROR]  (KeyError)",
        sample_frames=("app.py:1:in run",),
        representative_line="app.py:1:in run",
        window_started_at=started,
    )


def test_first_occurrence_is_admitted_with_zero_count() -> None:
    observed = _record(started=START + timedelta(minutes=1))
    decision = decide(None, timedelta.max, CONFIG, observed)
    assert decision.admit is True
    assert decision.record.count == 0
    assert decision.record.window_started_at == observed.window_started_at


def test_fresh_record_increments_and_keeps_window_start() -> None:
    observed = _record(started=START + timedelta(minutes=1))
    decision = decide(_record(count=2), timedelta(minutes=1), CONFIG, observed)
    assert decision.admit is True
    assert decision.record.count == 3
    assert decision.record.window_started_at == START


def test_count_reaching_limit_is_suppressed() -> None:
    decision = decide(_record(count=4), timedelta(minutes=1), CONFIG, _record())
    assert decision.admit is False
    assert decision.record.count == 5


def test_suppressed_count_keeps_growing() -> None:
    decision = decide(_record(count=9), timedelta(minutes=1), CONFIG, _record())
    assert decision.admit is False
    assert decision.record.count == 10


def test_expired_window_resets_like_first_occurrence() -> None:
    observed = _record(started=START + timedelta(minutes=30))
    decision = decide(_record(count=12), timedelta(minutes=30), CONFIG, observed)
    assert decision.admit is True
    assert decision.record.count == 0
    assert decision.record.window_started_at == observed.window_started_at


def test_n_occurrences_admit_min_n_limit() -> None:
    for limit in (1, 3, 5):
        config = ThrottleConfig(count_limit=limit, window_duration=timedelta(minutes=30))
        existing = None
        admitted = 0
        for _ in range(limit + 4):
            age = timedelta.max if existing is None else timedelta(seconds=10)
            decision = decide(existing, age, config, _record())
            admitted += decision.admit
            existing = decision.record
        assert admitted == limit
