"""Fingerprint helpers (core domain).

A fingerprint groups recurring occurrences of "the same" error. The composed
subject is the basis, so digit normalization of the subject also collapses
occurrences that only differ by numbers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Tuple

from core.config import NotifierOptions
from core.errors import MalformedOccurrence
from core.models import Occurrence
from core.subject import compose_subject

LOGGER = logging.getLogger(__name__)

MAX_SAMPLE_FRAMES = 50

# Interpreter stdlib, installed third-party packages and profiling/benchmark
# harness frames never identify the failing call site.
INTERNAL_FRAME_PATTERN = re.compile(
    r"(site-packages|dist-packages)[\\/]"
    r"|[\\/]lib[\\/]python\d+(\.\d+)?[\\/]"
    r"|[\\/](timeit|cProfile|profile|benchmark)\.py\b"
    r"|^<frozen "
)

_PATH_SEPARATORS = re.compile(r"[\\/]")


@dataclass(frozen=True)
class Fingerprint:
    """Throttle key plus the diagnostics stored alongside it."""

    key: str
    subject: str
    sample_frames: Tuple[str, ...]
    representative_line: str


def filter_frames(frames: Iterable[object]) -> Tuple[str, ...]:
    """Drop runtime-library and benchmark harness frames, keeping order."""

    kept = []
    for frame in frames:
        if not isinstance(frame, str):
            raise MalformedOccurrence(f"Unusable stack frame: {frame!r}")
        if INTERNAL_FRAME_PATTERN.search(frame):
            continue
        kept.append(frame)
    return tuple(kept[:MAX_SAMPLE_FRAMES])


def representative_line(frames: Tuple[str, ...]) -> str:
    """Return the last path segment of the first application frame."""

    if not frames:
        return ""
    return _PATH_SEPARATORS.split(frames[0])[-1]


def build_fingerprint(occurrence: Occurrence, options: NotifierOptions) -> Fingerprint:
    """Derive the throttle key for an occurrence.

    Falls back to the exception type name when there is no backtrace at all.
    Unusable frames degrade to an empty sample instead of failing.
    """

    subject = compose_subject(occurrence, options)
    try:
        frames = filter_frames(occurrence.frames)
    except MalformedOccurrence as exc:
        LOGGER.warning("Ignoring backtrace for %s: %s", occurrence.exception_type, exc)
        frames = ()

    if occurrence.frames:
        key = subject
    else:
        key = occurrence.exception_type or "Exception"

    return Fingerprint(
        key=key,
        subject=subject,
        sample_frames=frames,
        representative_line=representative_line(frames),
    )
