"""Unit tests for date window factories and membership."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from ticketflow.models import RangeKind, Scope
from ticketflow.windows.window import (
    TimestampFormatError,
    WindowValidationError,
    contains,
    current_week_contains,
    custom_window,
    disabled_window,
    display_text,
    duration_days,
    parse_wire_timestamp,
    revise_window,
    validate_weekly_range,
    weekly_window,
)

LIMA = ZoneInfo("America/Lima")


class TestParseWireTimestamp:
    def test_parses_day_first_24h(self):
        assert parse_wire_timestamp("10/01/2025 09:00") == datetime(2025, 1, 10, 9, 0)

    @pytest.mark.parametrize(
        "text",
        ["2025-01-10 09:00", "10/01/2025", "1/1/2025 9:00", "32/01/2025 09:00", "10/01/2025 25:00", ""],
    )
    def test_rejects_other_formats(self, text):
        with pytest.raises(TimestampFormatError):
            parse_wire_timestamp(text)


class TestContains:
    def test_in_range_scenario(self, january_window):
        assert contains(january_window, "10/01/2025 09:00")
        assert not contains(january_window, "13/01/2025 09:00")

    def test_endpoints_are_inclusive(self, january_window):
        assert contains(january_window, "06/01/2025 00:00")
        assert contains(january_window, "12/01/2025 23:59")
        assert not contains(january_window, "05/01/2025 23:59")

    def test_aware_timestamps_use_reporting_timezone(self, january_window):
        # 03:00 UTC on the 13th is still the 12th in Lima
        assert contains(january_window, datetime(2025, 1, 13, 3, 0, tzinfo=timezone.utc))
        assert not contains(january_window, datetime(2025, 1, 13, 6, 0, tzinfo=timezone.utc))

    def test_malformed_text_raises(self, january_window):
        with pytest.raises(TimestampFormatError):
            contains(january_window, "2025-01-10T09:00")

    def test_disabled_window_delegates_to_fallback(self):
        window = disabled_window(Scope.MONTHLY)
        seen = []

        def fallback(ts):
            seen.append(ts)
            return True

        assert contains(window, "01/01/2020 10:00", fallback=fallback)
        assert seen == [datetime(2020, 1, 1, 10, 0)]

    def test_disabled_window_defaults_to_current_week(self):
        window = disabled_window(Scope.MONTHLY)
        assert not contains(window, "01/01/2020 10:00")


class TestCurrentWeek:
    def test_iso_week_monday_to_sunday(self):
        wednesday = datetime(2025, 1, 8, 12, 0, tzinfo=LIMA)
        assert current_week_contains(datetime(2025, 1, 6, 0, 0), now=wednesday)
        assert current_week_contains(datetime(2025, 1, 12, 23, 0), now=wednesday)
        assert not current_week_contains(datetime(2025, 1, 13, 0, 0), now=wednesday)
        assert not current_week_contains(datetime(2025, 1, 5, 23, 59), now=wednesday)

    def test_disabled_window_shows_current_week(self):
        window = disabled_window(Scope.CORRECTIVE, now=datetime(2025, 1, 8, 12, 0, tzinfo=LIMA))
        assert (window.from_date, window.to_date) == (date(2025, 1, 6), date(2025, 1, 12))
        assert window.range_kind is RangeKind.DISABLED
        assert window.scope is Scope.CORRECTIVE


class TestWeeklyWindow:
    def test_thursday_ends_on_itself(self):
        window = weekly_window(Scope.MONTHLY, now=datetime(2025, 1, 9, 10, 0, tzinfo=LIMA))
        assert (window.from_date, window.to_date) == (date(2025, 1, 3), date(2025, 1, 9))

    def test_wednesday_ends_on_previous_thursday(self):
        window = weekly_window(Scope.MONTHLY, now=datetime(2025, 1, 8, 10, 0, tzinfo=LIMA))
        assert (window.from_date, window.to_date) == (date(2024, 12, 27), date(2025, 1, 2))

    def test_now_is_read_in_reporting_timezone(self):
        # Friday 03:00 UTC is still Thursday evening in Lima
        window = weekly_window(Scope.MONTHLY, now=datetime(2025, 1, 10, 3, 0, tzinfo=timezone.utc))
        assert window.to_date == date(2025, 1, 9)

    def test_weekly_window_metadata(self):
        window = weekly_window(Scope.CORRECTIVE, now=datetime(2025, 1, 9, tzinfo=LIMA))
        assert window.range_kind is RangeKind.WEEKLY
        assert window.description == "Weekly Range (corrective)"
        assert duration_days(window) == 7


class TestValidation:
    def test_weekly_range_friday_to_thursday(self):
        validate_weekly_range(date(2025, 1, 3), date(2025, 1, 9))
        validate_weekly_range(date(2025, 1, 3), date(2025, 1, 30))

    @pytest.mark.parametrize(
        "from_date,to_date,message",
        [
            (date(2025, 1, 4), date(2025, 1, 9), "Friday"),
            (date(2025, 1, 3), date(2025, 1, 8), "Thursday"),
            (date(2025, 1, 3), date(2025, 2, 6), "30 days"),
            (date(2025, 1, 9), date(2025, 1, 3), "before"),
        ],
    )
    def test_weekly_range_violations(self, from_date, to_date, message):
        with pytest.raises(WindowValidationError, match=message):
            validate_weekly_range(from_date, to_date)

    def test_custom_requires_from_before_to(self):
        with pytest.raises(WindowValidationError):
            custom_window(date(2025, 1, 6), date(2025, 1, 6))

    def test_custom_description_bounds(self):
        with pytest.raises(WindowValidationError):
            custom_window(date(2025, 1, 1), date(2025, 1, 31), "")
        with pytest.raises(WindowValidationError):
            custom_window(date(2025, 1, 1), date(2025, 1, 31), "x" * 101)
        assert custom_window(date(2025, 1, 1), date(2025, 1, 31), "x" * 100).description == "x" * 100

    def test_custom_default_description(self):
        window = custom_window(date(2025, 1, 1), date(2025, 1, 31), scope=Scope.GLOBAL)
        assert window.description == "Custom Range (global)"
        assert window.range_kind is RangeKind.CUSTOM

    def test_revise_revalidates_for_range_kind(self, january_window):
        with pytest.raises(WindowValidationError):
            revise_window(january_window, from_date=date(2025, 1, 3), to_date=date(2025, 1, 9), description="")

        revised = revise_window(
            january_window.model_copy(update={"range_kind": RangeKind.CUSTOM}),
            to_date=date(2025, 1, 20),
        )
        assert revised.to_date == date(2025, 1, 20)
        assert revised.updated_at >= january_window.updated_at


class TestDisplay:
    def test_display_text(self, january_window):
        assert display_text(january_window) == "06/01/2025 - 12/01/2025 (Week 2)"

    def test_duration_is_inclusive(self, january_window):
        assert duration_days(january_window) == 7
