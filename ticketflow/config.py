"""ticketflow configuration management.

Loads configuration from environment variables with sensible defaults.
Reporting defaults follow the ticket exports we ingest (Lima timezone,
Spanish placeholder values, ManageEngine hyperlinks).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class DBConfig:
    """Database connection configuration."""

    url: str
    pool_size: int = 10
    pool_max_overflow: int = 20
    pool_timeout: int = 30
    echo: bool = False  # SQL logging


@dataclass
class ReportingConfig:
    """Constants applied while deriving report records."""

    timezone: str = "America/Lima"
    unassigned_placeholder: str = "No asignado"
    unknown_business_unit: str = "UNKNOWN"
    unknown_level: str = "Unknown"
    # Only records whose canonical status equals this may be edited by hand
    lockable_status: str = "Esperando El Cliente"
    # Query parameter carrying the ticket number in ManageEngine links
    link_id_param: str = "woID"
    error_preview_limit: int = 10


@dataclass
class AppConfig:
    """Root application configuration.

    Loads from environment variables with fail-fast on missing required values.
    """

    db: DBConfig
    log_level: str = "INFO"
    log_format: str = "text"  # json or text

    reporting: ReportingConfig = field(default_factory=ReportingConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables.

        Required environment variables:
        - DATABASE_URL: SQLAlchemy async connection string

        Optional (with defaults):
        - LOG_LEVEL: Logging verbosity (default: "INFO")
        - REPORT_TIMEZONE, UNASSIGNED_PLACEHOLDER, UNKNOWN_BUSINESS_UNIT, ...

        Raises:
            KeyError: If required environment variables are missing
        """
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise KeyError(
                "DATABASE_URL environment variable is required. "
                "Example: sqlite+aiosqlite:///./ticketflow.db"
            )

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
            db=DBConfig(
                url=database_url,
                pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
                pool_max_overflow=int(os.getenv("DB_POOL_MAX_OVERFLOW", "20")),
                pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
                echo=os.getenv("DB_ECHO", "false").lower() == "true",
            ),
            reporting=ReportingConfig(
                timezone=os.getenv("REPORT_TIMEZONE", "America/Lima"),
                unassigned_placeholder=os.getenv("UNASSIGNED_PLACEHOLDER", "No asignado"),
                unknown_business_unit=os.getenv("UNKNOWN_BUSINESS_UNIT", "UNKNOWN"),
                unknown_level=os.getenv("UNKNOWN_LEVEL", "Unknown"),
                lockable_status=os.getenv("LOCKABLE_STATUS", "Esperando El Cliente"),
                link_id_param=os.getenv("LINK_ID_PARAM", "woID"),
                error_preview_limit=int(os.getenv("ERROR_PREVIEW_LIMIT", "10")),
            ),
        )

    @property
    def config_root(self) -> Path:
        """Root directory for configuration files (seed rules YAML)."""
        return Path(__file__).parent.parent / "config"

    @property
    def default_rules_path(self) -> Path:
        """Path to default_rules.yaml."""
        return self.config_root / "default_rules.yaml"


# Singleton instance (lazy-loaded)
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create singleton AppConfig instance from environment.

    Returns:
        AppConfig: Application configuration

    Raises:
        KeyError: If required environment variables are missing
    """
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config
    _config = None
