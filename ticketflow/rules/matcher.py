"""Pattern matching primitives for classification rules.

Three comparison kinds are supported:
- exact: case-insensitive equality after trimming both sides
- contains: case-insensitive substring test (pattern trimmed)
- regex: case-insensitive ``re.search`` of the raw pattern against raw text

A regex that fails to compile never matches; the failure is logged as a
warning instead of aborting classification.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from ticketflow.models import PatternKind, PatternRule

logger = logging.getLogger(__name__)


class InvalidPatternError(ValueError):
    """Regex source pattern cannot be compiled."""

    pass


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str] | None:
    """Compile ``pattern`` case-insensitively, returning None when invalid."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def validate_pattern(pattern: str, kind: PatternKind) -> None:
    """Raise InvalidPatternError if a regex pattern does not compile.

    Args:
        pattern: Source pattern as entered by the user
        kind: Comparison kind of the rule

    Raises:
        InvalidPatternError: If ``kind`` is regex and the pattern is invalid
    """
    if kind is not PatternKind.REGEX:
        return
    try:
        re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise InvalidPatternError(f"Invalid regular expression {pattern!r}: {e}") from e


def match_pattern(
    pattern: str,
    text: str | None,
    kind: PatternKind,
    compiled: re.Pattern[str] | None = None,
) -> bool:
    """Compare ``text`` against ``pattern`` using ``kind`` semantics.

    ``compiled`` lets callers holding a precompiled regex skip the cache lookup.
    """
    if text is None:
        return False

    if kind is PatternKind.EXACT:
        return text.strip().lower() == pattern.strip().lower()

    if kind is PatternKind.CONTAINS:
        return pattern.strip().lower() in text.lower()

    regex = compiled if compiled is not None else compile_pattern(pattern)
    if regex is None:
        logger.warning(f"Invalid regex pattern {pattern!r}; treating as no match")
        return False
    return regex.search(text) is not None


def matches(rule: PatternRule, text: str | None) -> bool:
    """Return True if an active ``rule`` matches ``text``."""
    if not rule.active:
        return False
    return match_pattern(rule.source_pattern, text, rule.pattern_kind)


def preview_match(pattern: str, text: str, kind: PatternKind | str = PatternKind.CONTAINS) -> bool:
    """Preview whether ``pattern`` would match ``text`` without storing a rule."""
    return match_pattern(pattern, text, PatternKind(kind))
