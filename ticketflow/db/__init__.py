"""Database layer for ticketflow with async SQLAlchemy."""

from ticketflow.db.connection import close_db, get_session, init_db
from ticketflow.db.models import (
    Base,
    DateWindowModel,
    ImportLogModel,
    ParentChildLinkModel,
    PatternRuleModel,
    TicketRecordModel,
    WindowSettingsModel,
)

__all__ = [
    "Base",
    "PatternRuleModel",
    "DateWindowModel",
    "WindowSettingsModel",
    "TicketRecordModel",
    "ParentChildLinkModel",
    "ImportLogModel",
    "get_session",
    "init_db",
    "close_db",
]
