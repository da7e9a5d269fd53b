"""Pytest configuration and fixtures for ticketflow tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ticketflow.config import reset_config
from ticketflow.rules.ruleset import reset_rule_cache
from ticketflow.windows.registry import reset_window_registry
from ticketflow.db.models import Base
from ticketflow.models import DateWindow, PatternKind, PatternRule, RangeKind, RuleFamily, Scope


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("REPORT_TIMEZONE", "America/Lima")
    reset_config()
    reset_rule_cache()
    reset_window_registry()
    yield
    reset_config()
    reset_rule_cache()
    reset_window_registry()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def business_unit_rules() -> list[PatternRule]:
    """A small business-unit rule family."""
    return [
        PatternRule(id=1, family=RuleFamily.BUSINESS_UNIT, source_pattern="portal ffvv", target_value="FFVV", priority=0),
        PatternRule(id=2, family=RuleFamily.BUSINESS_UNIT, source_pattern="somos belcorp", target_value="SB", priority=1),
        PatternRule(
            id=3,
            family=RuleFamily.BUSINESS_UNIT,
            source_pattern=r"^prol\b",
            target_value="PROL",
            pattern_kind=PatternKind.REGEX,
            priority=2,
        ),
    ]


@pytest.fixture
def status_rules() -> list[PatternRule]:
    """Status mapping rules."""
    return [
        PatternRule(id=10, family=RuleFamily.STATUS, source_pattern="dev in progress", target_value="In L3 Backlog"),
        PatternRule(id=11, family=RuleFamily.STATUS, source_pattern="nivel 2", target_value="On going in L2", priority=1),
        PatternRule(id=12, family=RuleFamily.STATUS, source_pattern="validado", target_value="Closed", priority=2),
    ]


@pytest.fixture
def january_window() -> DateWindow:
    """Weekly window 2025-01-06..2025-01-12 for the monthly scope."""
    return DateWindow(
        id=1,
        from_date=date(2025, 1, 6),
        to_date=date(2025, 1, 12),
        description="Week 2",
        range_kind=RangeKind.WEEKLY,
        scope=Scope.MONTHLY,
    )


@pytest.fixture
def raw_row() -> dict:
    """A complete raw ticket row."""
    return {
        "request_id": "125476",
        "request_id_link": "https://sdp.example.com/WorkOrder.do?woMode=viewWO&woID=125476",
        "created_time": "10/01/2025 09:00",
        "applications": "Portal FFVV",
        "categorization": "Error de datos",
        "request_status": "Nivel 2",
        "module": "Pedidos",
        "subject": "No carga el pedido",
        "priority": "Alta",
        "additional_info": "Escalado",
        "linked_request_id": None,
    }
