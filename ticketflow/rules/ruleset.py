"""Ordered rule snapshots used to classify ticket text.

A RuleSet holds the active rules of one family sorted by (priority, id) and
returns the target value of the first match. RuleSetCache rebuilds snapshots
lazily after an explicit invalidation and swaps them in by reference, so a
derivation run always sees one consistent snapshot per family.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

from ticketflow.config import ReportingConfig, get_config
from ticketflow.models import PatternKind, PatternRule, RuleFamily
from ticketflow.rules.matcher import compile_pattern, match_pattern

logger = logging.getLogger(__name__)

RuleLoader = Callable[[RuleFamily], Awaitable[list[PatternRule]]]


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one piece of text."""

    value: str | None
    rule: PatternRule | None = None
    confidence: Literal["high", "low", "none"] = "none"

    @property
    def matched(self) -> bool:
        return self.rule is not None


class RuleSet:
    """Immutable, ordered snapshot of one rule family.

    No match falls back to:
    - status: the input text unchanged
    - business_unit / level: ``default`` (UNKNOWN / Unknown unless configured)
    """

    def __init__(
        self,
        family: RuleFamily,
        rules: Iterable[PatternRule],
        default: str | None = None,
        version: int = 0,
    ):
        self.family = family
        self.version = version
        self.default = default

        ordered = sorted(
            (r for r in rules if r.active and r.family == family),
            key=lambda r: (r.priority, r.id),
        )
        self._entries: tuple[tuple[PatternRule, re.Pattern[str] | None], ...] = tuple(
            (rule, self._precompile(rule)) for rule in ordered
        )

    @staticmethod
    def _precompile(rule: PatternRule) -> re.Pattern[str] | None:
        if rule.pattern_kind is not PatternKind.REGEX:
            return None
        compiled = compile_pattern(rule.source_pattern)
        if compiled is None:
            logger.warning(
                f"Rule {rule.id} ({rule.family.value}) has invalid regex "
                f"{rule.source_pattern!r}; it will never match"
            )
        return compiled

    @property
    def rules(self) -> tuple[PatternRule, ...]:
        return tuple(rule for rule, _ in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def _fallback(self, text: str | None) -> str | None:
        if self.family is RuleFamily.STATUS:
            return text
        return self.default

    def classify_with_details(self, text: str | None) -> Classification:
        """Classify ``text`` and report which rule matched."""
        for rule, compiled in self._entries:
            if rule.pattern_kind is PatternKind.REGEX and compiled is None:
                continue
            if match_pattern(rule.source_pattern, text, rule.pattern_kind, compiled):
                confidence = "high" if rule.pattern_kind is PatternKind.EXACT else "low"
                return Classification(rule.target_value, rule, confidence)
        return Classification(self._fallback(text))

    def classify(self, text: str | None) -> str | None:
        """Return the target value of the first matching rule."""
        return self.classify_with_details(text).value


def default_for(family: RuleFamily, reporting: ReportingConfig | None = None) -> str | None:
    """Sentinel returned when no rule of ``family`` matches."""
    reporting = reporting or ReportingConfig()
    if family is RuleFamily.BUSINESS_UNIT:
        return reporting.unknown_business_unit
    if family is RuleFamily.LEVEL:
        return reporting.unknown_level
    return None


class RuleSetCache:
    """Versioned read-through cache of RuleSets keyed by family.

    Snapshots are rebuilt on first use after ``invalidate()``. A rebuild that
    races with an invalidation is returned to its caller but not stored.

    The loader may be bound at construction or passed per call, so one
    process-wide cache can serve every session while rule edits made through
    any RuleService invalidate it.
    """

    def __init__(self, loader: RuleLoader | None = None, reporting: ReportingConfig | None = None):
        self._loader = loader
        self._reporting = reporting or ReportingConfig()
        self._snapshots: MappingProxyType[RuleFamily, RuleSet] = MappingProxyType({})
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    async def get(self, family: RuleFamily, loader: RuleLoader | None = None) -> RuleSet:
        """Return the current snapshot for ``family``, loading it if needed.

        Raises:
            ValueError: If no loader is bound and none is passed
        """
        cached = self._snapshots.get(family)
        if cached is not None:
            return cached

        loader = loader or self._loader
        if loader is None:
            raise ValueError(f"No rule loader available to build the {family.value} rule set")

        generation = self._generation
        rules = await loader(family)
        ruleset = RuleSet(
            family,
            rules,
            default=default_for(family, self._reporting),
            version=generation,
        )
        logger.debug(f"Built {family.value} rule set with {len(ruleset)} rules (v{generation})")

        if generation == self._generation:
            self._snapshots = MappingProxyType({**self._snapshots, family: ruleset})
        return ruleset

    def invalidate(self, family: RuleFamily | None = None) -> None:
        """Drop the snapshot for ``family`` (or every family)."""
        self._generation += 1
        if family is None:
            self._snapshots = MappingProxyType({})
        else:
            remaining = {k: v for k, v in self._snapshots.items() if k != family}
            self._snapshots = MappingProxyType(remaining)


# Process-wide cache shared by RuleService and ImportOrchestrator (lazy-loaded)
_rule_cache: RuleSetCache | None = None


def get_rule_cache() -> RuleSetCache:
    """Get or create the shared RuleSetCache."""
    global _rule_cache
    if _rule_cache is None:
        _rule_cache = RuleSetCache(reporting=get_config().reporting)
    return _rule_cache


def reset_rule_cache() -> None:
    """Drop the shared cache (next get_rule_cache() starts cold)."""
    global _rule_cache
    _rule_cache = None
