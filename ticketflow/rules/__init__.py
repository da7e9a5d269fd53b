"""User-editable pattern rules and their classification snapshots."""

from ticketflow.rules.matcher import matches, preview_match
from ticketflow.rules.ruleset import Classification, RuleSet, RuleSetCache, get_rule_cache, reset_rule_cache

__all__ = [
    "Classification",
    "RuleSet",
    "RuleSetCache",
    "get_rule_cache",
    "matches",
    "preview_match",
    "reset_rule_cache",
]
