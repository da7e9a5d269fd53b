"""Unit tests for configuration loading."""

from __future__ import annotations

import pytest

from ticketflow.config import AppConfig, get_config, reset_config


class TestAppConfig:
    def test_database_url_is_required(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL")
        with pytest.raises(KeyError):
            AppConfig.from_env()

    def test_reporting_defaults(self):
        reporting = AppConfig.from_env().reporting

        assert reporting.timezone == "America/Lima"
        assert reporting.unassigned_placeholder == "No asignado"
        assert reporting.unknown_business_unit == "UNKNOWN"
        assert reporting.unknown_level == "Unknown"
        assert reporting.lockable_status == "Esperando El Cliente"
        assert reporting.link_id_param == "woID"
        assert reporting.error_preview_limit == 10

    def test_reporting_overrides(self, monkeypatch):
        monkeypatch.setenv("UNKNOWN_BUSINESS_UNIT", "SIN BU")
        monkeypatch.setenv("ERROR_PREVIEW_LIMIT", "3")
        monkeypatch.setenv("DB_ECHO", "true")

        config = AppConfig.from_env()

        assert config.reporting.unknown_business_unit == "SIN BU"
        assert config.reporting.error_preview_limit == 3
        assert config.db.echo is True

    def test_default_rules_path_points_at_repo_config(self):
        path = AppConfig.from_env().default_rules_path
        assert path.name == "default_rules.yaml"
        assert path.exists()


class TestSingleton:
    def test_get_config_is_cached_until_reset(self, monkeypatch):
        first = get_config()
        assert get_config() is first

        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        assert get_config().log_level == first.log_level

        reset_config()
        assert get_config().log_level == "WARNING"
