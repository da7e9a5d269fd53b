"""Unit tests for the YAML rule seed loader."""

from __future__ import annotations

import pytest

from ticketflow.models import PatternKind, RuleFamily
from ticketflow.rules.ruleset import RuleSet
from ticketflow.rules.seed import ConfigurationError, load_default_rules


class TestLoadDefaultRules:
    def test_bundled_rules_load(self):
        rules = load_default_rules()
        families = {r.family for r in rules}
        assert families == {RuleFamily.BUSINESS_UNIT, RuleFamily.STATUS, RuleFamily.LEVEL}

    @pytest.mark.parametrize(
        "applications,expected",
        [
            ("App - Gestiona tu Negocio", "FFVV"),
            ("Portal FFVV", "FFVV"),
            ("Somos Belcorp 2.0", "SB"),
            ("Unete 3.0", "UB-3"),
            ("Unete 2.0", "UN-2"),
            ("Catálogo Digital", "CD"),
            ("PROL", "PROL"),
        ],
    )
    def test_bundled_business_units(self, applications, expected):
        ruleset = RuleSet(RuleFamily.BUSINESS_UNIT, _with_ids(load_default_rules()), default="UNKNOWN")
        assert ruleset.classify(applications) == expected

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("En Mantenimiento Correctivo", "In L3 Backlog"),
            ("Dev in Progress", "In L3 Backlog"),
            ("Nivel 2", "On going in L2"),
            ("Nivel 3", "On going in L3"),
            ("Validado", "Closed"),
            ("Closed", "Closed"),
            ("Esperando El Cliente", "Esperando El Cliente"),
            ("  validado  ", "Closed"),
            ("Cancelado - no validado", "Cancelado - no validado"),
            ("Closed pending L3 review", "Closed pending L3 review"),
        ],
    )
    def test_bundled_statuses(self, status, expected):
        ruleset = RuleSet(RuleFamily.STATUS, _with_ids(load_default_rules()))
        assert ruleset.classify(status) == expected

    def test_bundled_status_rules_are_exact(self):
        statuses = [r for r in load_default_rules() if r.family is RuleFamily.STATUS]
        assert statuses
        assert {r.pattern_kind for r in statuses} == {PatternKind.EXACT}

    def test_priority_defaults_to_list_position(self, tmp_path):
        seed = tmp_path / "rules.yaml"
        seed.write_text(
            "status:\n"
            "  - {pattern: a, target: A}\n"
            "  - {pattern: '^b$', target: B, kind: regex, priority: 9}\n"
            "  - {pattern: c, target: C}\n"
        )
        rules = load_default_rules(seed)

        assert [r.priority for r in rules] == [0, 9, 2]
        assert rules[1].pattern_kind is PatternKind.REGEX

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_default_rules(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        seed = tmp_path / "rules.yaml"
        seed.write_text("status: [")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_default_rules(seed)

    def test_unknown_family(self, tmp_path):
        seed = tmp_path / "rules.yaml"
        seed.write_text("owner:\n  - {pattern: a, target: A}\n")
        with pytest.raises(ConfigurationError, match="Unknown rule family"):
            load_default_rules(seed)

    def test_invalid_regex_rejected(self, tmp_path):
        seed = tmp_path / "rules.yaml"
        seed.write_text("status:\n  - {pattern: '[a', target: A, kind: regex}\n")
        with pytest.raises(ConfigurationError, match="rule #1"):
            load_default_rules(seed)


def _with_ids(rules):
    return [r.model_copy(update={"id": i}) for i, r in enumerate(rules, start=1)]
