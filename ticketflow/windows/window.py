"""Date window factories, validation and membership tests.

Timestamps in ticket exports use the ``dd/mm/yyyy HH:MM`` wire format and are
local to the reporting timezone (America/Lima unless configured). Membership
is evaluated at calendar-day granularity, endpoints inclusive.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from ticketflow.models import WIRE_TIMESTAMP_FORMAT, DateWindow, RangeKind, Scope, utcnow

DEFAULT_TIMEZONE = "America/Lima"
MAX_WEEKLY_SPAN_DAYS = 30
MAX_DESCRIPTION_LENGTH = 100

_WIRE_TIMESTAMP_RE = re.compile(r"^\d{2}/\d{2}/\d{4} \d{2}:\d{2}$")

FRIDAY = 4
THURSDAY = 3

Fallback = Callable[[datetime], bool]


class TimestampFormatError(ValueError):
    """Timestamp text is not in ``dd/mm/yyyy HH:MM`` format."""

    pass


class WindowValidationError(ValueError):
    """Date window definition violates its range-kind constraints."""

    pass


def parse_wire_timestamp(text: str) -> datetime:
    """Parse a ``dd/mm/yyyy HH:MM`` timestamp.

    Raises:
        TimestampFormatError: If ``text`` is not a valid wire timestamp
    """
    if not isinstance(text, str) or not _WIRE_TIMESTAMP_RE.match(text.strip()):
        raise TimestampFormatError(f"Expected dd/mm/yyyy HH:MM, got {text!r}")
    try:
        return datetime.strptime(text.strip(), WIRE_TIMESTAMP_FORMAT)
    except ValueError as e:
        raise TimestampFormatError(f"Invalid timestamp {text!r}: {e}") from e


def local_today(tz: str = DEFAULT_TIMEZONE, now: datetime | None = None) -> date:
    """Calendar date of ``now`` (default: the current instant) in ``tz``."""
    now = now or datetime.now(ZoneInfo(tz))
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(ZoneInfo(tz)).date()


def _local_date(timestamp: datetime, tz: str) -> date:
    # Naive wire timestamps are already local to the reporting timezone
    if timestamp.tzinfo is None:
        return timestamp.date()
    return timestamp.astimezone(ZoneInfo(tz)).date()


def current_iso_week(tz: str = DEFAULT_TIMEZONE, now: datetime | None = None) -> tuple[date, date]:
    """Monday and Sunday of the ISO week containing ``now`` in ``tz``."""
    today = local_today(tz, now)
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


def current_week_contains(
    timestamp: datetime, tz: str = DEFAULT_TIMEZONE, now: datetime | None = None
) -> bool:
    """Default fallback for disabled windows: is ``timestamp`` in this ISO week?"""
    monday, sunday = current_iso_week(tz, now)
    return monday <= _local_date(timestamp, tz) <= sunday


def contains(
    window: DateWindow,
    timestamp: datetime | str,
    fallback: Fallback | None = None,
    tz: str = DEFAULT_TIMEZONE,
) -> bool:
    """Return True if ``timestamp`` falls inside ``window``.

    Disabled windows delegate to ``fallback`` (current ISO week by default).

    Raises:
        TimestampFormatError: If ``timestamp`` is text in the wrong format
    """
    if isinstance(timestamp, str):
        timestamp = parse_wire_timestamp(timestamp)

    if window.range_kind is RangeKind.DISABLED:
        if fallback is None:
            return current_week_contains(timestamp, tz)
        return fallback(timestamp)

    return window.from_date <= _local_date(timestamp, tz) <= window.to_date


def _validate_description(description: str) -> None:
    if not description or not description.strip():
        raise WindowValidationError("Description cannot be empty")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise WindowValidationError(
            f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
        )


def validate_custom_range(from_date: date, to_date: date) -> None:
    if from_date >= to_date:
        raise WindowValidationError(
            f"from_date ({from_date}) must be before to_date ({to_date})"
        )


def validate_weekly_range(from_date: date, to_date: date) -> None:
    """Weekly windows run Friday to Thursday and span at most 30 days."""
    validate_custom_range(from_date, to_date)
    if from_date.weekday() != FRIDAY:
        raise WindowValidationError(f"from_date ({from_date}) must be a Friday")
    if to_date.weekday() != THURSDAY:
        raise WindowValidationError(f"to_date ({to_date}) must be a Thursday")
    span = (to_date - from_date).days
    if span > MAX_WEEKLY_SPAN_DAYS:
        raise WindowValidationError(
            f"Date range cannot exceed {MAX_WEEKLY_SPAN_DAYS} days. Current range: {span} days"
        )


def weekly_window(
    scope: Scope = Scope.MONTHLY,
    now: datetime | None = None,
    tz: str = DEFAULT_TIMEZONE,
) -> DateWindow:
    """Friday-to-Thursday window ending on the most recent Thursday (today included)."""
    today = local_today(tz, now)
    thursday = today - timedelta(days=(today.weekday() - THURSDAY) % 7)
    return DateWindow(
        from_date=thursday - timedelta(days=6),
        to_date=thursday,
        description=f"Weekly Range ({scope.value})",
        range_kind=RangeKind.WEEKLY,
        scope=scope,
    )


def custom_window(
    from_date: date,
    to_date: date,
    description: str | None = None,
    scope: Scope = Scope.MONTHLY,
) -> DateWindow:
    """Explicit window; ``from_date`` must precede ``to_date``.

    Raises:
        WindowValidationError: If the range or description is invalid
    """
    validate_custom_range(from_date, to_date)
    description = description if description is not None else f"Custom Range ({scope.value})"
    _validate_description(description)
    return DateWindow(
        from_date=from_date,
        to_date=to_date,
        description=description,
        range_kind=RangeKind.CUSTOM,
        scope=scope,
    )


def disabled_window(
    scope: Scope = Scope.MONTHLY,
    now: datetime | None = None,
    tz: str = DEFAULT_TIMEZONE,
) -> DateWindow:
    """Disabled window; its dates show the current ISO week it falls back to."""
    monday, sunday = current_iso_week(tz, now)
    return DateWindow(
        from_date=monday,
        to_date=sunday,
        description=f"Disabled ({scope.value})",
        range_kind=RangeKind.DISABLED,
        scope=scope,
    )


def revise_window(window: DateWindow, **changes) -> DateWindow:
    """Return ``window`` with ``changes`` applied, re-validated for its range kind.

    Raises:
        WindowValidationError: If the revised window is invalid
    """
    revised = window.model_copy(update={**changes, "updated_at": utcnow()})
    if revised.range_kind is RangeKind.WEEKLY:
        validate_weekly_range(revised.from_date, revised.to_date)
    elif revised.range_kind is RangeKind.CUSTOM:
        validate_custom_range(revised.from_date, revised.to_date)
    _validate_description(revised.description)
    return revised


def display_text(window: DateWindow) -> str:
    """``dd/mm/yyyy - dd/mm/yyyy (description)``."""
    return (
        f"{window.from_date:%d/%m/%Y} - {window.to_date:%d/%m/%Y} ({window.description})"
    )


def duration_days(window: DateWindow) -> int:
    """Number of calendar days covered, both endpoints included."""
    return (window.to_date - window.from_date).days + 1
