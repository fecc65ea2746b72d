"""Fixed-window throttle decision (core domain).

This module is pure: it never touches storage or the clock. Callers pass the
existing record, its age and the record observed for the current occurrence.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Optional

from core.config import ThrottleConfig
from core.models import ThrottleRecord


@dataclass(frozen=True)
class Decision:
    """Admit/suppress outcome and the record state to persist."""

    admit: bool
    record: ThrottleRecord


def decide(
    existing: Optional[ThrottleRecord],
    age: timedelta,
    config: ThrottleConfig,
    observed: ThrottleRecord,
) -> Decision:
    """Return the decision for one occurrence.

    - No record yet: admit and seed the window with count 0.
    - Window expired (age >= window_duration): admit and start a fresh window.
    - Otherwise: increment and admit while the count stays below count_limit,
      so the first ``count_limit`` occurrences of a window go out.

    ``observed`` carries the current subject/backtrace and the window start to
    use when a new window begins.
    """

    if existing is None or age >= config.window_duration:
        return Decision(admit=True, record=replace(observed, count=0))

    count = existing.count + 1
    record = replace(observed, count=count, window_started_at=existing.window_started_at)
    return Decision(admit=count < config.count_limit, record=record)
