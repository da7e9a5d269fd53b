"""YAML-driven default rule seeding.

The seed file maps each rule family to an ordered list of entries::

    business_unit:
      - {pattern: "portal ffvv", target: FFVV}
      - {pattern: "^prol$", target: PROL, kind: regex, priority: 5}

Seeding is idempotent: a rule whose (family, pattern, kind) already exists is
skipped.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import get_config
from ticketflow.models import PatternKind, PatternRule, RuleFamily
from ticketflow.rules.matcher import InvalidPatternError, validate_pattern
from ticketflow.rules.ruleset import get_rule_cache
from ticketflow.db.repositories import RuleRepository

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Seed file is invalid or missing."""

    pass


def load_default_rules(path: Path | None = None) -> list[PatternRule]:
    """Parse the seed YAML into unsaved rules.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    if path is None:
        path = get_config().default_rules_path

    if not path.exists():
        raise ConfigurationError(f"Rule seed file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping of rule families in {path}")

    rules: list[PatternRule] = []
    for family_name, entries in data.items():
        try:
            family = RuleFamily(family_name)
        except ValueError:
            raise ConfigurationError(f"Unknown rule family {family_name!r} in {path}")

        for position, entry in enumerate(entries or []):
            try:
                kind = PatternKind(entry.get("kind", PatternKind.CONTAINS.value))
                pattern = str(entry["pattern"]).strip()
                validate_pattern(pattern, kind)
                rules.append(
                    PatternRule(
                        family=family,
                        source_pattern=pattern,
                        target_value=str(entry["target"]).strip(),
                        pattern_kind=kind,
                        priority=int(entry.get("priority", position)),
                        active=bool(entry.get("active", True)),
                    )
                )
            except (KeyError, ValueError, AttributeError, InvalidPatternError) as e:
                raise ConfigurationError(
                    f"Invalid {family_name} rule #{position + 1} in {path}: {e}"
                )

    return rules


async def seed_rules(session: AsyncSession, path: Path | None = None) -> tuple[int, int]:
    """Insert default rules that are not stored yet.

    Returns:
        (created, skipped) counts
    """
    repo = RuleRepository(session)
    existing = {
        (r.family, r.source_pattern.lower(), r.pattern_kind) for r in await repo.find_all()
    }

    created = skipped = 0
    for rule in load_default_rules(path):
        key = (rule.family, rule.source_pattern.lower(), rule.pattern_kind)
        if key in existing:
            skipped += 1
            continue
        await repo.create(rule)
        existing.add(key)
        created += 1

    if created:
        get_rule_cache().invalidate()
    logger.info(f"Seeded rules: {created} created, {skipped} already present")
    return created, skipped
