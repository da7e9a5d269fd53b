"""Integration tests for rule administration and seeding."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.models import PatternKind, RuleFamily
from ticketflow.rules.ruleset import RuleSetCache
from ticketflow.rules.seed import load_default_rules, seed_rules
from ticketflow.rules.service import RuleService, repository_loader


@pytest.fixture
def cache(db_session: AsyncSession) -> RuleSetCache:
    return RuleSetCache(repository_loader(db_session))


class TestCreate:
    @pytest.mark.asyncio
    async def test_priority_appended_after_last_rule(self, db_session, cache):
        service = RuleService(db_session, cache)

        first = await service.create(RuleFamily.STATUS, " nivel 2 ", "On going in L2")
        second = await service.create(RuleFamily.STATUS, "nivel 3", "On going in L3")
        other = await service.create(RuleFamily.BUSINESS_UNIT, "prol", "PROL")

        assert first.success and second.success
        assert first.rule.source_pattern == "nivel 2"
        assert (first.rule.priority, second.rule.priority) == (0, 1)
        assert other.rule.priority == 0

    @pytest.mark.asyncio
    async def test_invalid_regex_is_rejected(self, db_session, cache):
        result = await RuleService(db_session, cache).create(
            RuleFamily.STATUS, "nivel (2", "X", pattern_kind=PatternKind.REGEX
        )
        assert result.success is False
        assert "regular expression" in result.error
        assert await RuleService(db_session).list() == []

    @pytest.mark.asyncio
    async def test_empty_pattern_is_rejected(self, db_session):
        result = await RuleService(db_session).create(RuleFamily.STATUS, "   ", "X")
        assert result.success is False


class TestChangesReachClassification:
    @pytest.mark.asyncio
    async def test_cache_sees_new_rule(self, db_session, cache):
        service = RuleService(db_session, cache)
        assert (await cache.get(RuleFamily.BUSINESS_UNIT)).classify("Portal FFVV") == "UNKNOWN"

        await service.create(RuleFamily.BUSINESS_UNIT, "portal ffvv", "FFVV")

        assert (await cache.get(RuleFamily.BUSINESS_UNIT)).classify("Portal FFVV") == "FFVV"

    @pytest.mark.asyncio
    async def test_reorder_changes_first_match(self, db_session, cache):
        service = RuleService(db_session, cache)
        broad = (await service.create(RuleFamily.STATUS, "nivel", "Generic")).rule
        narrow = (await service.create(RuleFamily.STATUS, "nivel 3", "On going in L3")).rule
        assert (await cache.get(RuleFamily.STATUS)).classify("Nivel 3") == "Generic"

        result = await service.reorder(RuleFamily.STATUS, [narrow.id, broad.id])

        assert result.success
        assert (await cache.get(RuleFamily.STATUS)).classify("Nivel 3") == "On going in L3"

    @pytest.mark.asyncio
    async def test_deactivated_rule_stops_matching(self, db_session, cache):
        service = RuleService(db_session, cache)
        rule = (await service.create(RuleFamily.STATUS, "validado", "Closed")).rule

        result = await service.update(rule.id, active=False)

        assert result.success
        assert result.rule.active is False
        assert (await cache.get(RuleFamily.STATUS)).classify("Validado") == "Validado"

    @pytest.mark.asyncio
    async def test_delete_removes_rule(self, db_session, cache):
        service = RuleService(db_session, cache)
        rule = (await service.create(RuleFamily.LEVEL, "On going in L2", "L2", PatternKind.EXACT)).rule

        assert (await service.delete(rule.id)).success
        assert await service.list(RuleFamily.LEVEL) == []


class TestUnknownIds:
    @pytest.mark.asyncio
    async def test_update_unknown_rule(self, db_session):
        result = await RuleService(db_session).update(404, target_value="X")
        assert result.success is False
        assert "404" in result.error

    @pytest.mark.asyncio
    async def test_delete_unknown_rule(self, db_session):
        assert (await RuleService(db_session).delete(404)).success is False

    @pytest.mark.asyncio
    async def test_reorder_with_foreign_id(self, db_session):
        service = RuleService(db_session)
        rule = (await service.create(RuleFamily.STATUS, "a", "A")).rule
        result = await service.reorder(RuleFamily.STATUS, [rule.id, 999])
        assert result.success is False
        assert "999" in result.error


class TestStatistics:
    @pytest.mark.asyncio
    async def test_counts_per_family(self, db_session):
        service = RuleService(db_session)
        await service.create(RuleFamily.STATUS, "a", "A")
        await service.create(RuleFamily.STATUS, "b", "B", active=False)

        stats = await service.statistics()

        assert stats["status"] == {"total": 2, "active": 1}
        assert stats["business_unit"] == {"total": 0, "active": 0}


class TestPreview:
    def test_preview_outcomes(self):
        assert RuleService.preview("ffvv", "Portal FFVV").success
        assert RuleService.preview("sb", "Portal FFVV").error == "No match"
        assert RuleService.preview("(", "x", PatternKind.REGEX).success is False


class TestSeed:
    @pytest.mark.asyncio
    async def test_seeding_is_idempotent(self, db_session):
        expected = len(load_default_rules())

        created, skipped = await seed_rules(db_session)
        assert (created, skipped) == (expected, 0)

        created, skipped = await seed_rules(db_session)
        assert (created, skipped) == (0, expected)
        assert len(await RuleService(db_session).list()) == expected
