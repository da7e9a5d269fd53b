"""SQLAlchemy async database models for ticketflow.

Runs on SQLite (aiosqlite) for development and tests and on PostgreSQL in
production. Enforces at most one active date window per scope with a partial
unique index.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class PatternRuleModel(Base):
    """User-editable classification rule (business unit, status or level)."""

    __tablename__ = "pattern_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    source_pattern: Mapped[str] = mapped_column(Text, nullable=False)
    target_value: Mapped[str] = mapped_column(Text, nullable=False)
    pattern_kind: Mapped[str] = mapped_column(String(16), nullable=False, default="contains")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "family IN ('business_unit', 'status', 'level')",
            name="check_rule_family_valid",
        ),
        CheckConstraint(
            "pattern_kind IN ('exact', 'contains', 'regex')",
            name="check_rule_pattern_kind_valid",
        ),
        Index("idx_rules_family_order", "family", "active", "priority", "id"),
    )


class DateWindowModel(Base):
    """Inclusive date range scoped to a report family."""

    __tablename__ = "date_windows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_date: Mapped[date] = mapped_column(Date, nullable=False)
    to_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    range_kind: Mapped[str] = mapped_column(String(16), nullable=False, default="disabled")
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly", index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # At most one active window per scope
        Index(
            "idx_window_active_scope",
            "scope",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = 1"),
        ),
        CheckConstraint("from_date <= to_date", name="check_window_range_ordered"),
        CheckConstraint(
            "scope IN ('monthly', 'corrective', 'global')",
            name="check_window_scope_valid",
        ),
        CheckConstraint(
            "range_kind IN ('weekly', 'custom', 'disabled')",
            name="check_window_range_kind_valid",
        ),
    )


class WindowSettingsModel(Base):
    """Singleton settings row (id = 1) holding the global-mode toggle."""

    __tablename__ = "window_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    global_mode_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (CheckConstraint("id = 1", name="check_settings_singleton"),)


class TicketRecordModel(Base):
    """Derived report record, replaced wholesale per scope on each import."""

    __tablename__ = "ticket_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # Natural key and raw fields
    request_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    request_id_link: Mapped[str | None] = mapped_column(Text)
    created_time: Mapped[str] = mapped_column(Text, nullable=False)
    applications: Mapped[str | None] = mapped_column(Text)
    categorization: Mapped[str | None] = mapped_column(Text)
    request_status: Mapped[str] = mapped_column(Text, nullable=False)
    module: Mapped[str | None] = mapped_column(Text)
    subject: Mapped[str | None] = mapped_column(Text)
    subject_link: Mapped[str | None] = mapped_column(Text)
    priority: Mapped[str | None] = mapped_column(Text)
    eta: Mapped[str | None] = mapped_column(Text)
    additional_info: Mapped[str | None] = mapped_column(Text)
    resolved_time: Mapped[str | None] = mapped_column(Text)
    affected_countries: Mapped[str | None] = mapped_column(Text)
    recurrence: Mapped[str | None] = mapped_column(Text)
    technician: Mapped[str | None] = mapped_column(Text)
    jira: Mapped[str | None] = mapped_column(Text)
    problem_id: Mapped[str | None] = mapped_column(Text)
    problem_id_link: Mapped[str | None] = mapped_column(Text)
    linked_request_id: Mapped[str | None] = mapped_column(Text)
    linked_request_id_link: Mapped[str | None] = mapped_column(Text)
    request_ola_status: Mapped[str | None] = mapped_column(Text)
    escalation_group: Mapped[str | None] = mapped_column(Text)
    affected_applications: Mapped[str | None] = mapped_column(Text)
    should_resolve_level1: Mapped[str | None] = mapped_column(Text)
    campaign: Mapped[str | None] = mapped_column(Text)
    cuv1: Mapped[str | None] = mapped_column(Text)
    release: Mapped[str | None] = mapped_column(Text)
    rca: Mapped[str | None] = mapped_column(Text)

    # Derived
    business_unit: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    request_status_canonical: Mapped[str] = mapped_column(Text, nullable=False)
    in_date_range: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    linked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    level: Mapped[str | None] = mapped_column(Text)
    priority_report: Mapped[str | None] = mapped_column(Text)
    recurrence_computed: Mapped[str | None] = mapped_column(Text)
    additional_info_report: Mapped[str | None] = mapped_column(Text)
    day: Mapped[int | None] = mapped_column(Integer)
    week: Mapped[int | None] = mapped_column(Integer)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    observations: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("scope", "request_id", name="uq_record_scope_request"),
        CheckConstraint("linked_count >= 0", name="check_linked_count_non_negative"),
    )


class ParentChildLinkModel(Base):
    """Parent ticket referencing a child ticket."""

    __tablename__ = "parent_child_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent_request_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    child_request_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    parent_link: Mapped[str | None] = mapped_column(Text)
    child_link: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("parent_request_id", "child_request_id", name="uq_link_pair"),
    )


class ImportLogModel(Base):
    """Audit row per import run (records or links)."""

    __tablename__ = "import_log"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    run_timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, index=True
    )
    source_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    scope: Mapped[str | None] = mapped_column(String(16))

    status: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    records_inserted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    records_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    message: Mapped[str | None] = mapped_column(Text)
    error_details: Mapped[dict | None] = mapped_column(JSON)
    duration_seconds: Mapped[float | None] = mapped_column()

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('SUCCESS', 'FAILED', 'PARTIAL_SUCCESS')",
            name="check_import_status_valid",
        ),
        CheckConstraint("records_inserted >= 0", name="check_import_inserted_non_negative"),
        CheckConstraint("records_failed >= 0", name="check_import_failed_non_negative"),
    )
