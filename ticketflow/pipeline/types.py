"""Type definitions for pipeline operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ticketflow.models import DerivedRecord


class ImportStatus(str, Enum):
    """Status of an import operation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


@dataclass(frozen=True)
class RowError:
    """A row excluded from the batch (1-based row number)."""

    row: int
    field: str
    message: str

    def __str__(self) -> str:
        return f"row {self.row} [{self.field}]: {self.message}"


@dataclass
class DerivationResult:
    """Outcome of deriving one batch of raw rows."""

    succeeded: list[DerivedRecord] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)

    @property
    def status(self) -> ImportStatus:
        if not self.succeeded:
            return ImportStatus.FAILED
        if self.row_errors:
            return ImportStatus.PARTIAL_SUCCESS
        return ImportStatus.SUCCESS

    def error_preview(self, limit: int = 10) -> list[RowError]:
        return self.row_errors[:limit]


@dataclass
class ImportResult:
    """Result of an import operation."""

    source_name: str
    status: ImportStatus
    records_inserted: int = 0
    records_failed: int = 0
    message: str = ""
    error_details: Optional[dict] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """Check if import was successful."""
        return self.status in (ImportStatus.SUCCESS, ImportStatus.PARTIAL_SUCCESS)

    @property
    def total_records(self) -> int:
        """Total records processed."""
        return self.records_inserted + self.records_failed
