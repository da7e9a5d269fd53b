"""Scoped date windows deciding whether a ticket is in the report range."""

from ticketflow.windows.registry import (
    WindowRegistry,
    WindowResult,
    WindowService,
    get_window_registry,
    reset_window_registry,
)
from ticketflow.windows.window import (
    TimestampFormatError,
    WindowValidationError,
    contains,
    custom_window,
    disabled_window,
    display_text,
    duration_days,
    parse_wire_timestamp,
    weekly_window,
)

__all__ = [
    "TimestampFormatError",
    "WindowRegistry",
    "WindowResult",
    "WindowService",
    "WindowValidationError",
    "contains",
    "custom_window",
    "disabled_window",
    "get_window_registry",
    "display_text",
    "duration_days",
    "parse_wire_timestamp",
    "reset_window_registry",
    "weekly_window",
]
