from __future__ import annotations

from core.config import NotifierOptions, resolve_options
from core.models import CorrelationContext, Occurrence
from core.subject import ELLIPSIS, MAX_SUBJECT_LENGTH, compose_subject, normalize_digits


def _occurrence(message: str = "boom", context: CorrelationContext | None = None) -> Occurrence:
    return Occurrence(
        exception_type="ZeroDivisionError",
        message=message,
        frames=("app/models/order.py:10:in total",),
        context=context,
    )


def test_subject_includes_prefix_type_and_quoted_message() -> None:
    subject = compose_subject(_occurrence(), NotifierOptions())
    assert subject == '[ERROR]  (ZeroDivisionError) "boom"'


def test_subject_without_verbose_message() -> None:
    options = resolve_options(NotifierOptions(), {"verbose_subject": False})
    assert compose_subject(_occurrence(), options) == "[ERROR]  (ZeroDivisionError)"


def test_subject_includes_controller_and_action_label() -> None:
    context = CorrelationContext(controller_name="orders", action_name="create")
    subject = compose_subject(_occurrence(context=context), NotifierOptions())
    assert subject.startswith("[ERROR] orders#create (ZeroDivisionError)")

    options = resolve_options(
        NotifierOptions(), {"include_controller_and_action_names_in_subject": False}
    )
    assert "orders#create" not in compose_subject(_occurrence(context=context), options)


def test_accumulated_errors_annotation_only_above_one() -> None:
    once = resolve_options(NotifierOptions(), {"accumulated_errors_count": 1})
    many = resolve_options(NotifierOptions(), {"accumulated_errors_count": 3})
    assert "times)" not in compose_subject(_occurrence(), once)
    assert compose_subject(_occurrence(), many).startswith("[ERROR] (3 times)")


def test_long_subject_is_truncated_with_ellipsis() -> None:
    subject = compose_subject(_occurrence(message="x" * 500), NotifierOptions())
    assert len(subject) == MAX_SUBJECT_LENGTH
    assert subject.endswith(ELLIPSIS)


def test_subject_at_limit_is_not_truncated() -> None:
    options = resolve_options(NotifierOptions(), {"email_prefix": "", "verbose_subject": False})
    occurrence = Occurrence(exception_type="E" * (MAX_SUBJECT_LENGTH - 3), message="")
    subject = compose_subject(occurrence, options)
    assert len(subject) == MAX_SUBJECT_LENGTH
    assert not subject.endswith(ELLIPSIS)


def test_normalize_digits_collapses_runs() -> None:
    assert normalize_digits("user 12345 failed 7 times") == "user N failed N times"


def test_subject_normalization_is_optional() -> None:
    options = resolve_options(NotifierOptions(), {"normalize_subject": True})
    assert '"order N missing"' in compose_subject(_occurrence("order 42 missing"), options)
    assert '"order 42 missing"' in compose_subject(_occurrence("order 42 missing"), NotifierOptions())
