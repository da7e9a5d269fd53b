"""ticketflow Pydantic models for type-safe data validation.

Rules, date windows and ticket records are immutable values: every change
produces a new instance (``model_copy``) with a refreshed ``updated_at``.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Wire format of timestamps in ticket exports (24h clock)
WIRE_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatternKind(str, Enum):
    """How a rule's source pattern is compared against text."""

    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"


class RuleFamily(str, Enum):
    """Which derived attribute a rule produces."""

    BUSINESS_UNIT = "business_unit"
    STATUS = "status"
    LEVEL = "level"


class Scope(str, Enum):
    """Report family a date window or record set belongs to."""

    MONTHLY = "monthly"
    CORRECTIVE = "corrective"
    GLOBAL = "global"


class RangeKind(str, Enum):
    """Semantics of a date window."""

    WEEKLY = "weekly"  # Friday-Thursday, auto-computed
    CUSTOM = "custom"  # explicit interval
    DISABLED = "disabled"  # fall back to current ISO week


class PatternRule(BaseModel):
    """A single user-editable classification rule."""

    model_config = ConfigDict(frozen=True)

    id: int = 0  # Assigned by storage
    family: RuleFamily
    source_pattern: str
    target_value: str
    pattern_kind: PatternKind = PatternKind.CONTAINS
    priority: int = 0  # Lower is evaluated first
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def update(self, **changes: Any) -> PatternRule:
        """Return a copy with ``changes`` applied and ``updated_at`` refreshed."""
        changes.pop("id", None)
        changes.pop("created_at", None)
        return self.model_copy(update={**changes, "updated_at": utcnow()})


class DateWindow(BaseModel):
    """Inclusive calendar date range scoped to a report family."""

    model_config = ConfigDict(frozen=True)

    id: int = 0
    from_date: date
    to_date: date
    description: str
    is_active: bool = True
    range_kind: RangeKind = RangeKind.DISABLED
    scope: Scope = Scope.MONTHLY
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def deactivate(self) -> DateWindow:
        return self.model_copy(update={"is_active": False, "updated_at": utcnow()})


class WindowSettings(BaseModel):
    """Singleton toggle forcing every scope onto the global window."""

    model_config = ConfigDict(frozen=True)

    id: int = 1
    global_mode_enabled: bool = False
    updated_at: datetime = Field(default_factory=utcnow)


class ParentChildLink(BaseModel):
    """Parent ticket referencing a child (dependency) ticket."""

    model_config = ConfigDict(frozen=True)

    parent_request_id: str
    child_request_id: str
    parent_link: str | None = None
    child_link: str | None = None

    @field_validator("parent_request_id", "child_request_id", mode="before")
    @classmethod
    def _strip_ids(cls, v: Any) -> Any:
        return _coerce_cell(v)


class TicketFields(BaseModel):
    """Raw ticket columns shared by imported rows and derived records."""

    request_id: str | None = None
    request_id_link: str | None = None
    created_time: str | None = None
    applications: str | None = None
    categorization: str | None = None
    request_status: str | None = None
    module: str | None = None
    subject: str | None = None
    subject_link: str | None = None
    priority: str | None = None
    eta: str | None = None
    additional_info: str | None = None
    resolved_time: str | None = None
    affected_countries: str | None = None
    recurrence: str | None = None
    technician: str | None = None
    jira: str | None = None
    problem_id: str | None = None
    problem_id_link: str | None = None
    linked_request_id: str | None = None
    linked_request_id_link: str | None = None
    request_ola_status: str | None = None
    escalation_group: str | None = None
    affected_applications: str | None = None
    should_resolve_level1: str | None = None
    campaign: str | None = None
    cuv1: str | None = None
    release: str | None = None
    rca: str | None = None


class RawTicketRow(TicketFields):
    """Typed row handed over by the spreadsheet parsing stage.

    Display text and hyperlinks already arrive split (``*_link`` fields).
    Numeric cells are coerced to text; empty cells become None.
    """

    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> Any:
        return _coerce_cell(v)


class DerivedRecord(TicketFields):
    """Ticket record enriched by the derivation pipeline."""

    scope: Scope
    request_id: str
    created_time: str
    request_status: str

    # Derived
    business_unit: str
    request_status_canonical: str
    in_date_range: bool
    linked_count: int = 0
    status_locked: bool = False

    level: str | None = None
    priority_report: str | None = None
    recurrence_computed: str | None = None
    additional_info_report: str | None = None
    day: int | None = None
    week: int | None = None
    message: str = ""
    observations: str | None = None


def _coerce_cell(value: Any) -> Any:
    """Normalise spreadsheet cell values (NaN, floats, padding) to text."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime(WIRE_TIMESTAMP_FORMAT)
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip() if value.strip() else None
    return value
