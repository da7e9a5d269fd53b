"""Repositories mapping ORM rows to immutable domain values.

Repositories never commit: callers own the transaction (``get_session()``
commits on clean exit and rolls back on error).
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.db.models import (
    DateWindowModel,
    ImportLogModel,
    ParentChildLinkModel,
    PatternRuleModel,
    TicketRecordModel,
    WindowSettingsModel,
)
from ticketflow.models import (
    DateWindow,
    DerivedRecord,
    ParentChildLink,
    PatternKind,
    PatternRule,
    RangeKind,
    RuleFamily,
    Scope,
    WindowSettings,
    utcnow,
)


def _rule_from_row(row: PatternRuleModel) -> PatternRule:
    return PatternRule(
        id=row.id,
        family=RuleFamily(row.family),
        source_pattern=row.source_pattern,
        target_value=row.target_value,
        pattern_kind=PatternKind(row.pattern_kind),
        priority=row.priority,
        active=row.active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _window_from_row(row: DateWindowModel) -> DateWindow:
    return DateWindow(
        id=row.id,
        from_date=row.from_date,
        to_date=row.to_date,
        description=row.description,
        is_active=row.is_active,
        range_kind=RangeKind(row.range_kind),
        scope=Scope(row.scope),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class RuleRepository:
    """Storage for pattern rules."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_active(self, family: RuleFamily) -> list[PatternRule]:
        """Active rules of ``family`` in evaluation order (priority, id)."""
        stmt = (
            select(PatternRuleModel)
            .where(
                and_(
                    PatternRuleModel.family == family.value,
                    PatternRuleModel.active.is_(True),
                )
            )
            .order_by(PatternRuleModel.priority, PatternRuleModel.id)
        )
        result = await self.session.execute(stmt)
        return [_rule_from_row(row) for row in result.scalars()]

    async def find_all(self, family: RuleFamily | None = None) -> list[PatternRule]:
        stmt = select(PatternRuleModel).order_by(
            PatternRuleModel.family, PatternRuleModel.priority, PatternRuleModel.id
        )
        if family is not None:
            stmt = stmt.where(PatternRuleModel.family == family.value)
        result = await self.session.execute(stmt)
        return [_rule_from_row(row) for row in result.scalars()]

    async def find_by_id(self, rule_id: int) -> PatternRule | None:
        row = await self.session.get(PatternRuleModel, rule_id)
        return _rule_from_row(row) if row else None

    async def create(self, rule: PatternRule) -> PatternRule:
        """Insert ``rule`` and return it with its storage-assigned id."""
        row = PatternRuleModel(
            family=rule.family.value,
            source_pattern=rule.source_pattern,
            target_value=rule.target_value,
            pattern_kind=rule.pattern_kind.value,
            priority=rule.priority,
            active=rule.active,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )
        self.session.add(row)
        await self.session.flush()  # Get ID without committing
        return _rule_from_row(row)

    async def update(self, rule: PatternRule) -> PatternRule | None:
        """Persist every mutable field of ``rule``. Returns None if it is gone."""
        row = await self.session.get(PatternRuleModel, rule.id)
        if row is None:
            return None
        row.family = rule.family.value
        row.source_pattern = rule.source_pattern
        row.target_value = rule.target_value
        row.pattern_kind = rule.pattern_kind.value
        row.priority = rule.priority
        row.active = rule.active
        row.updated_at = rule.updated_at
        await self.session.flush()
        return _rule_from_row(row)

    async def delete(self, rule_id: int) -> bool:
        result = await self.session.execute(
            delete(PatternRuleModel).where(PatternRuleModel.id == rule_id)
        )
        return result.rowcount > 0

    async def max_priority(self, family: RuleFamily) -> int | None:
        stmt = select(func.max(PatternRuleModel.priority)).where(
            PatternRuleModel.family == family.value
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def count_by_family(self) -> dict[str, dict[str, int]]:
        """Rule counts per family: ``{family: {"total": n, "active": m}}``."""
        stmt = select(
            PatternRuleModel.family,
            PatternRuleModel.active,
            func.count(PatternRuleModel.id),
        ).group_by(PatternRuleModel.family, PatternRuleModel.active)
        counts: dict[str, dict[str, int]] = {
            f.value: {"total": 0, "active": 0} for f in RuleFamily
        }
        for family, active, n in (await self.session.execute(stmt)).all():
            counts[family]["total"] += n
            if active:
                counts[family]["active"] += n
        return counts


class WindowRepository:
    """Storage for date windows and the global-mode settings row."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_scope(self, scope: Scope) -> DateWindow | None:
        """Active window of ``scope`` if any."""
        stmt = select(DateWindowModel).where(
            and_(DateWindowModel.scope == scope.value, DateWindowModel.is_active.is_(True))
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return _window_from_row(row) if row else None

    async def find_active(self) -> list[DateWindow]:
        stmt = (
            select(DateWindowModel)
            .where(DateWindowModel.is_active.is_(True))
            .order_by(DateWindowModel.scope)
        )
        return [_window_from_row(row) for row in (await self.session.execute(stmt)).scalars()]

    async def find_by_id(self, window_id: int) -> DateWindow | None:
        row = await self.session.get(DateWindowModel, window_id)
        return _window_from_row(row) if row else None

    async def deactivate_scope(self, scope: Scope) -> int:
        """Close the active window of ``scope``. Returns rows affected."""
        stmt = (
            update(DateWindowModel)
            .where(
                and_(
                    DateWindowModel.scope == scope.value,
                    DateWindowModel.is_active.is_(True),  # Only active rows
                )
            )
            .values(is_active=False, updated_at=utcnow())
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def save_for_scope(self, window: DateWindow) -> DateWindow:
        """Deactivate the current holder of ``window.scope`` and insert ``window``.

        Both steps run in the caller's transaction, preserving the
        at-most-one-active-window-per-scope invariant.
        """
        await self.deactivate_scope(window.scope)

        row = DateWindowModel(
            from_date=window.from_date,
            to_date=window.to_date,
            description=window.description,
            is_active=True,
            range_kind=window.range_kind.value,
            scope=window.scope.value,
            created_at=window.created_at,
            updated_at=window.updated_at,
        )
        self.session.add(row)
        await self.session.flush()
        return _window_from_row(row)

    async def update(self, window: DateWindow) -> DateWindow | None:
        row = await self.session.get(DateWindowModel, window.id)
        if row is None:
            return None
        row.from_date = window.from_date
        row.to_date = window.to_date
        row.description = window.description
        row.range_kind = window.range_kind.value
        row.updated_at = window.updated_at
        await self.session.flush()
        return _window_from_row(row)

    async def delete(self, window_id: int) -> bool:
        result = await self.session.execute(
            delete(DateWindowModel).where(DateWindowModel.id == window_id)
        )
        return result.rowcount > 0

    async def get_settings(self) -> WindowSettings:
        """Return the settings singleton, creating it on first access."""
        row = await self.session.get(WindowSettingsModel, 1)
        if row is None:
            row = WindowSettingsModel(id=1, global_mode_enabled=False, updated_at=utcnow())
            self.session.add(row)
            await self.session.flush()
        return WindowSettings(
            id=row.id,
            global_mode_enabled=row.global_mode_enabled,
            updated_at=row.updated_at,
        )

    async def update_global_mode(self, enabled: bool) -> WindowSettings:
        await self.get_settings()
        row = await self.session.get(WindowSettingsModel, 1)
        row.global_mode_enabled = enabled
        row.updated_at = utcnow()
        await self.session.flush()
        return WindowSettings(
            id=row.id,
            global_mode_enabled=row.global_mode_enabled,
            updated_at=row.updated_at,
        )


class RecordRepository:
    """Storage for derived ticket records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def replace_all(self, scope: Scope, records: Iterable[DerivedRecord]) -> int:
        """Drop every record of ``scope`` and insert ``records`` in its place."""
        await self.session.execute(
            delete(TicketRecordModel).where(TicketRecordModel.scope == scope.value)
        )
        rows = [TicketRecordModel(**record.model_dump(mode="json")) for record in records]
        self.session.add_all(rows)
        await self.session.flush()
        return len(rows)

    async def find_by_scope(self, scope: Scope) -> list[DerivedRecord]:
        stmt = (
            select(TicketRecordModel)
            .where(TicketRecordModel.scope == scope.value)
            .order_by(TicketRecordModel.id)
        )
        rows = (await self.session.execute(stmt)).scalars()
        return [DerivedRecord.model_validate(row, from_attributes=True) for row in rows]

    async def find_by_request_id(
        self, request_id: str, scope: Scope = Scope.MONTHLY
    ) -> DerivedRecord | None:
        stmt = select(TicketRecordModel).where(
            and_(
                TicketRecordModel.scope == scope.value,
                TicketRecordModel.request_id == request_id,
            )
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return DerivedRecord.model_validate(row, from_attributes=True) if row else None

    async def update_status(
        self, request_id: str, new_status: str, scope: Scope = Scope.MONTHLY
    ) -> bool:
        """Set the canonical status and lock it against reprocessing."""
        stmt = (
            update(TicketRecordModel)
            .where(
                and_(
                    TicketRecordModel.scope == scope.value,
                    TicketRecordModel.request_id == request_id,
                )
            )
            .values(request_status_canonical=new_status, status_locked=True)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def locked_statuses(self, scope: Scope) -> dict[str, str]:
        """Canonical status of every ``status_locked`` record, keyed by request id."""
        stmt = select(
            TicketRecordModel.request_id, TicketRecordModel.request_status_canonical
        ).where(
            and_(
                TicketRecordModel.scope == scope.value,
                TicketRecordModel.status_locked.is_(True),
            )
        )
        return {request_id: status for request_id, status in (await self.session.execute(stmt)).all()}


class LinkRepository:
    """Storage for parent/child ticket relationships."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> list[ParentChildLink]:
        stmt = select(ParentChildLinkModel).order_by(ParentChildLinkModel.id)
        return [
            ParentChildLink(
                parent_request_id=row.parent_request_id,
                child_request_id=row.child_request_id,
                parent_link=row.parent_link,
                child_link=row.child_link,
            )
            for row in (await self.session.execute(stmt)).scalars()
        ]

    async def replace_all(self, links: Iterable[ParentChildLink]) -> int:
        """Replace the whole link set. Duplicate (parent, child) pairs keep the first."""
        await self.session.execute(delete(ParentChildLinkModel))

        seen: set[tuple[str, str]] = set()
        rows = []
        for link in links:
            key = (link.parent_request_id, link.child_request_id)
            if key in seen:
                continue
            seen.add(key)
            rows.append(ParentChildLinkModel(**link.model_dump()))

        self.session.add_all(rows)
        await self.session.flush()
        return len(rows)


class ImportLogRepository:
    """Read access to the import audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def recent(self, limit: int = 20) -> list[ImportLogModel]:
        stmt = select(ImportLogModel).order_by(ImportLogModel.run_timestamp.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars())
