"""Rule administration: create, edit, reorder and delete pattern rules.

Every change invalidates the RuleSetCache entry of the affected family so the
next classification sees the new ordering. Failures that are the caller's
fault (unknown id, invalid regex, empty pattern) come back as a failed
RuleResult rather than an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.db.repositories import RuleRepository
from ticketflow.models import PatternKind, PatternRule, RuleFamily, utcnow
from ticketflow.rules.matcher import InvalidPatternError, preview_match, validate_pattern
from ticketflow.rules.ruleset import RuleSetCache, get_rule_cache

logger = logging.getLogger(__name__)


@dataclass
class RuleResult:
    """Outcome of an administrative rule operation."""

    success: bool
    rule: PatternRule | None = None
    error: str | None = None


def repository_loader(session: AsyncSession):
    """Rule loader for RuleSetCache reading active rules through ``session``."""
    repo = RuleRepository(session)
    return repo.find_active


class RuleService:
    """CRUD over pattern rules with cache invalidation.

    Defaults to the shared RuleSetCache so edits reach every import that
    classifies through it.
    """

    def __init__(self, session: AsyncSession, cache: RuleSetCache | None = None):
        self.session = session
        self.repo = RuleRepository(session)
        self.cache = cache or get_rule_cache()

    def _invalidate(self, *families: RuleFamily) -> None:
        for family in set(families):
            self.cache.invalidate(family)

    @staticmethod
    def _check(source_pattern: str, target_value: str, kind: PatternKind) -> str | None:
        if not source_pattern:
            return "source_pattern cannot be empty"
        if not target_value:
            return "target_value cannot be empty"
        try:
            validate_pattern(source_pattern, kind)
        except InvalidPatternError as e:
            return str(e)
        return None

    async def create(
        self,
        family: RuleFamily,
        source_pattern: str,
        target_value: str,
        pattern_kind: PatternKind = PatternKind.CONTAINS,
        priority: int | None = None,
        active: bool = True,
    ) -> RuleResult:
        """Create a rule. Omitted priority appends it after the family's last rule."""
        source_pattern = source_pattern.strip()
        target_value = target_value.strip()
        error = self._check(source_pattern, target_value, pattern_kind)
        if error:
            return RuleResult(success=False, error=error)

        if priority is None:
            current_max = await self.repo.max_priority(family)
            priority = 0 if current_max is None else current_max + 1

        rule = await self.repo.create(
            PatternRule(
                family=family,
                source_pattern=source_pattern,
                target_value=target_value,
                pattern_kind=pattern_kind,
                priority=priority,
                active=active,
            )
        )
        self._invalidate(family)
        logger.info(f"Created {family.value} rule {rule.id}: {source_pattern!r} -> {target_value!r}")
        return RuleResult(success=True, rule=rule)

    async def update(self, rule_id: int, **changes) -> RuleResult:
        """Apply ``changes`` to rule ``rule_id`` (id and created_at are immutable)."""
        current = await self.repo.find_by_id(rule_id)
        if current is None:
            return RuleResult(success=False, error=f"Rule {rule_id} not found")

        for key in ("source_pattern", "target_value"):
            if isinstance(changes.get(key), str):
                changes[key] = changes[key].strip()
        if "family" in changes:
            changes["family"] = RuleFamily(changes["family"])
        if "pattern_kind" in changes:
            changes["pattern_kind"] = PatternKind(changes["pattern_kind"])

        revised = current.update(**changes)
        error = self._check(revised.source_pattern, revised.target_value, revised.pattern_kind)
        if error:
            return RuleResult(success=False, error=error)

        saved = await self.repo.update(revised)
        self._invalidate(current.family, revised.family)
        return RuleResult(success=True, rule=saved)

    async def delete(self, rule_id: int) -> RuleResult:
        current = await self.repo.find_by_id(rule_id)
        if current is None:
            return RuleResult(success=False, error=f"Rule {rule_id} not found")
        await self.repo.delete(rule_id)
        self._invalidate(current.family)
        logger.info(f"Deleted {current.family.value} rule {rule_id}")
        return RuleResult(success=True, rule=current)

    async def reorder(self, family: RuleFamily, rule_ids: list[int]) -> RuleResult:
        """Assign priorities 0..n-1 to ``rule_ids`` in the given order."""
        rules = {r.id: r for r in await self.repo.find_all(family)}
        missing = [rid for rid in rule_ids if rid not in rules]
        if missing:
            return RuleResult(
                success=False,
                error=f"Rules not found in {family.value}: {', '.join(map(str, missing))}",
            )

        now = utcnow()
        for priority, rule_id in enumerate(rule_ids):
            rule = rules[rule_id]
            if rule.priority != priority:
                await self.repo.update(rule.model_copy(update={"priority": priority, "updated_at": now}))
        self._invalidate(family)
        return RuleResult(success=True)

    async def list(self, family: RuleFamily | None = None) -> list[PatternRule]:
        return await self.repo.find_all(family)

    async def statistics(self) -> dict[str, dict[str, int]]:
        return await self.repo.count_by_family()

    @staticmethod
    def preview(pattern: str, text: str, kind: PatternKind = PatternKind.CONTAINS) -> RuleResult:
        """Check ``pattern`` against ``text`` without touching storage."""
        try:
            validate_pattern(pattern, kind)
        except InvalidPatternError as e:
            return RuleResult(success=False, error=str(e))
        if preview_match(pattern, text, kind):
            return RuleResult(success=True)
        return RuleResult(success=False, error="No match")
