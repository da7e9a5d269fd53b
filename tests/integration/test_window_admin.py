"""Integration tests for window administration and resolution."""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.models import RangeKind, Scope
from ticketflow.windows.registry import WindowService

LIMA = ZoneInfo("America/Lima")


@pytest.fixture
def service(db_session: AsyncSession) -> WindowService:
    return WindowService(db_session)


class TestActivation:
    @pytest.mark.asyncio
    async def test_weekly_window_ends_on_last_thursday(self, service):
        result = await service.activate_weekly(Scope.CORRECTIVE, now=datetime(2025, 1, 8, 10, tzinfo=LIMA))

        assert result.success
        assert (result.window.from_date, result.window.to_date) == (date(2024, 12, 27), date(2025, 1, 2))
        assert result.window.description == "Weekly Range (corrective)"
        assert (await service.current(Scope.CORRECTIVE)).id == result.window.id

    @pytest.mark.asyncio
    async def test_weekly_window_with_explicit_dates(self, service):
        result = await service.activate_weekly(
            Scope.MONTHLY, from_date=date(2025, 1, 3), to_date=date(2025, 1, 16)
        )
        assert result.success
        assert result.window.range_kind is RangeKind.WEEKLY

    @pytest.mark.asyncio
    async def test_weekly_window_must_start_on_friday(self, service):
        result = await service.activate_weekly(
            Scope.MONTHLY, from_date=date(2025, 1, 6), to_date=date(2025, 1, 16)
        )
        assert result.success is False
        assert "Friday" in result.error

    @pytest.mark.asyncio
    async def test_custom_window_replaces_active_one(self, service):
        await service.activate_weekly(Scope.MONTHLY)
        result = await service.activate_custom(date(2025, 1, 1), date(2025, 1, 31))

        current = await service.current(Scope.MONTHLY)
        assert current.id == result.window.id
        assert current.description == "Custom Range (monthly)"
        assert len(await service.repo.find_active()) == 1

    @pytest.mark.asyncio
    async def test_reversed_custom_range_rejected(self, service):
        result = await service.activate_custom(date(2025, 1, 31), date(2025, 1, 1))
        assert result.success is False
        assert await service.repo.find_active() == []

    @pytest.mark.asyncio
    async def test_long_description_rejected(self, service):
        result = await service.activate_custom(date(2025, 1, 1), date(2025, 1, 31), "x" * 101)
        assert result.success is False

    @pytest.mark.asyncio
    async def test_disable_falls_back_to_current_week(self, service):
        await service.activate_custom(date(2025, 1, 1), date(2025, 1, 31))
        result = await service.disable(Scope.MONTHLY, now=datetime(2025, 1, 8, 10, tzinfo=LIMA))

        assert result.window.range_kind is RangeKind.DISABLED
        assert (result.window.from_date, result.window.to_date) == (date(2025, 1, 6), date(2025, 1, 12))
        assert (await service.current(Scope.MONTHLY)).range_kind is RangeKind.DISABLED


class TestGlobalMode:
    @pytest.mark.asyncio
    async def test_global_window_governs_every_scope(self, service):
        global_window = (
            await service.activate_custom(date(2025, 1, 1), date(2025, 1, 31), scope=Scope.GLOBAL)
        ).window
        corrective = (
            await service.activate_custom(date(2025, 1, 6), date(2025, 1, 12), scope=Scope.CORRECTIVE)
        ).window

        assert (await service.current(Scope.CORRECTIVE)).id == corrective.id

        result = await service.set_global_mode(True)
        assert result.settings.global_mode_enabled is True
        assert (await service.current(Scope.CORRECTIVE)).id == global_window.id
        assert (await service.current(Scope.MONTHLY)).id == global_window.id

        await service.set_global_mode(False)
        assert (await service.current(Scope.CORRECTIVE)).id == corrective.id


class TestEditing:
    @pytest.mark.asyncio
    async def test_update_window_revalidates(self, service):
        window = (await service.activate_custom(date(2025, 1, 1), date(2025, 1, 31))).window

        ok = await service.update_window(window.id, description="Enero")
        bad = await service.update_window(window.id, to_date=date(2024, 12, 1))

        assert ok.success and ok.window.description == "Enero"
        assert bad.success is False
        assert (await service.current(Scope.MONTHLY)).description == "Enero"

    @pytest.mark.asyncio
    async def test_unknown_window(self, service):
        assert (await service.update_window(404, description="x")).success is False
        assert (await service.delete_window(404)).success is False

    @pytest.mark.asyncio
    async def test_delete_window(self, service):
        window = (await service.activate_custom(date(2025, 1, 1), date(2025, 1, 31))).window

        assert (await service.delete_window(window.id)).success
        assert (await service.current(Scope.MONTHLY)).range_kind is RangeKind.DISABLED
