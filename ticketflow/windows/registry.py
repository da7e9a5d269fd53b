"""Active-window resolution and window administration.

WindowRegistry caches one immutable snapshot of the settings row and the
active windows. Administrative changes go through WindowService, which
persists them and invalidates the registry.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType

from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import ReportingConfig, get_config
from ticketflow.db.repositories import WindowRepository
from ticketflow.models import DateWindow, Scope, WindowSettings
from ticketflow.windows.window import (
    WindowValidationError,
    custom_window,
    disabled_window,
    revise_window,
    weekly_window,
)

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], Awaitable[tuple[WindowSettings, list[DateWindow]]]]


@dataclass(frozen=True)
class WindowSnapshot:
    """Settings plus active windows as of one load."""

    settings: WindowSettings
    windows: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0


def repository_loader(session: AsyncSession) -> SnapshotLoader:
    """Build a snapshot loader reading through ``session``."""

    async def load() -> tuple[WindowSettings, list[DateWindow]]:
        repo = WindowRepository(session)
        return await repo.get_settings(), await repo.find_active()

    return load


class WindowRegistry:
    """Versioned read-through cache resolving the window for a scope."""

    def __init__(
        self, loader: SnapshotLoader | None = None, reporting: ReportingConfig | None = None
    ):
        self._loader = loader
        self._reporting = reporting or ReportingConfig()
        self._snapshot: WindowSnapshot | None = None
        self._version = 0

    async def snapshot(self, loader: SnapshotLoader | None = None) -> WindowSnapshot:
        """Current snapshot, loaded through ``loader`` (or the bound one) when cold.

        Raises:
            ValueError: If no loader is bound and none is passed
        """
        current = self._snapshot
        if current is not None:
            return current

        loader = loader or self._loader
        if loader is None:
            raise ValueError("No window loader available to build a snapshot")

        version = self._version
        settings, windows = await loader()
        snapshot = WindowSnapshot(
            settings=settings,
            windows=MappingProxyType({w.scope: w for w in windows if w.is_active}),
            version=version,
        )
        logger.debug(
            f"Loaded window snapshot v{version}: global_mode={settings.global_mode_enabled}, "
            f"{len(snapshot.windows)} active windows"
        )
        if version == self._version:
            self._snapshot = snapshot
        return snapshot

    async def resolve(
        self,
        scope: Scope,
        now: datetime | None = None,
        loader: SnapshotLoader | None = None,
    ) -> DateWindow:
        """Window governing ``scope``.

        Global mode routes every scope to the global window. When no window is
        configured an implicit disabled (current week) window is returned.
        """
        snapshot = await self.snapshot(loader)

        if snapshot.settings.global_mode_enabled:
            window = snapshot.windows.get(Scope.GLOBAL)
            if window is not None:
                return window
        else:
            window = snapshot.windows.get(scope)
            if window is not None:
                return window

        return disabled_window(scope, now=now, tz=self._reporting.timezone)

    def invalidate(self) -> None:
        self._version += 1
        self._snapshot = None


# Process-wide registry shared by WindowService and ImportOrchestrator (lazy-loaded)
_registry: WindowRegistry | None = None


def get_window_registry() -> WindowRegistry:
    """Get or create the shared WindowRegistry."""
    global _registry
    if _registry is None:
        _registry = WindowRegistry(reporting=get_config().reporting)
    return _registry


def reset_window_registry() -> None:
    """Drop the shared registry (next get_window_registry() starts cold)."""
    global _registry
    _registry = None


@dataclass
class WindowResult:
    """Outcome of an administrative window operation."""

    success: bool
    window: DateWindow | None = None
    settings: WindowSettings | None = None
    error: str | None = None


class WindowService:
    """Create, switch and disable date windows."""

    def __init__(
        self,
        session: AsyncSession,
        registry: WindowRegistry | None = None,
        reporting: ReportingConfig | None = None,
    ):
        self.session = session
        self.repo = WindowRepository(session)
        self.reporting = reporting or ReportingConfig()
        self.registry = registry or get_window_registry()
        self.loader = repository_loader(session)

    async def _activate(self, window: DateWindow) -> WindowResult:
        saved = await self.repo.save_for_scope(window)
        self.registry.invalidate()
        logger.info(f"Activated {saved.range_kind.value} window for {saved.scope.value}: "
                    f"{saved.from_date}..{saved.to_date}")
        return WindowResult(success=True, window=saved)

    async def activate_weekly(
        self,
        scope: Scope = Scope.MONTHLY,
        from_date: date | None = None,
        to_date: date | None = None,
        now: datetime | None = None,
    ) -> WindowResult:
        """Activate a Friday-Thursday window (auto-computed unless dates are given)."""
        window = weekly_window(scope, now=now, tz=self.reporting.timezone)
        if from_date is not None or to_date is not None:
            try:
                window = revise_window(
                    window,
                    from_date=from_date or window.from_date,
                    to_date=to_date or window.to_date,
                )
            except WindowValidationError as e:
                return WindowResult(success=False, error=str(e))
        return await self._activate(window)

    async def activate_custom(
        self,
        from_date: date,
        to_date: date,
        description: str | None = None,
        scope: Scope = Scope.MONTHLY,
    ) -> WindowResult:
        try:
            window = custom_window(from_date, to_date, description, scope)
        except WindowValidationError as e:
            return WindowResult(success=False, error=str(e))
        return await self._activate(window)

    async def disable(self, scope: Scope = Scope.MONTHLY, now: datetime | None = None) -> WindowResult:
        """Store a disabled window so ``scope`` falls back to the current week."""
        return await self._activate(disabled_window(scope, now=now, tz=self.reporting.timezone))

    async def update_window(self, window_id: int, **changes) -> WindowResult:
        current = await self.repo.find_by_id(window_id)
        if current is None:
            return WindowResult(success=False, error=f"Window {window_id} not found")
        try:
            revised = revise_window(current, **changes)
        except WindowValidationError as e:
            return WindowResult(success=False, error=str(e))
        saved = await self.repo.update(revised)
        self.registry.invalidate()
        return WindowResult(success=True, window=saved)

    async def delete_window(self, window_id: int) -> WindowResult:
        if not await self.repo.delete(window_id):
            return WindowResult(success=False, error=f"Window {window_id} not found")
        self.registry.invalidate()
        return WindowResult(success=True)

    async def set_global_mode(self, enabled: bool) -> WindowResult:
        settings = await self.repo.update_global_mode(enabled)
        self.registry.invalidate()
        logger.info(f"Global window mode {'enabled' if enabled else 'disabled'}")
        return WindowResult(success=True, settings=settings)

    async def current(self, scope: Scope) -> DateWindow:
        return await self.registry.resolve(scope, loader=self.loader)

    async def settings(self) -> WindowSettings:
        return await self.repo.get_settings()

