"""Subject line composition (core domain).

The same subject feeds both the notification and the throttle fingerprint, so
anything folded in here also affects grouping.
"""

from __future__ import annotations

import json
import re

from core.config import NotifierOptions
from core.models import Occurrence

MAX_SUBJECT_LENGTH = 120
ELLIPSIS = "..."
DIGIT_PLACEHOLDER = "N"

_DIGIT_RUNS = re.compile(r"[0-9]+")


def normalize_digits(text: str) -> str:
    """Replace every run of digits with a single placeholder character."""

    return _DIGIT_RUNS.sub(DIGIT_PLACEHOLDER, text)


def truncate_subject(subject: str, limit: int = MAX_SUBJECT_LENGTH) -> str:
    if len(subject) <= limit:
        return subject
    return subject[: limit - len(ELLIPSIS)] + ELLIPSIS


def compose_subject(occurrence: Occurrence, options: NotifierOptions) -> str:
    """Build the subject: prefix, accumulated count, label, type and message."""

    subject = options.email_prefix
    if options.accumulated_errors_count > 1:
        subject += f"({options.accumulated_errors_count} times)"
    label = occurrence.context.label if occurrence.context is not None else None
    if label and options.include_controller_and_action_names_in_subject:
        subject += label
    subject += f" ({occurrence.exception_type or 'Exception'})"
    if options.verbose_subject:
        subject += " " + json.dumps(occurrence.message, ensure_ascii=False)
    if options.normalize_subject:
        subject = normalize_digits(subject)
    return truncate_subject(subject)
