"""Record derivation pipeline.

Turns typed raw rows into DerivedRecords. Per row, in order:

1. Trim strings and map the unassigned placeholder (and blanks) to None
2. Recover missing ticket ids from their ManageEngine hyperlinks
3. Business unit from the application (or module) text
4. Canonical status from the raw status, unless a manual override is locked
5. ``in_date_range`` against the resolved date window
6. Linked-ticket count from the relationship aggregator
7. Report fields (level, priority label, additional info, observations)

Rows that cannot be derived are reported as RowErrors and excluded; they never
abort the batch. The pipeline is a pure transform over in-memory snapshots.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from ticketflow.config import ReportingConfig
from ticketflow.models import DateWindow, DerivedRecord, RawTicketRow, RuleFamily, Scope
from ticketflow.pipeline.types import DerivationResult, RowError
from ticketflow.relationships.aggregator import RelationshipAggregator
from ticketflow.rules.ruleset import RuleSet
from ticketflow.windows.window import Fallback, TimestampFormatError, contains, parse_wire_timestamp

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("request_id", "created_time", "request_status")

# Plain id field -> hyperlink field it can be recovered from
LINKED_ID_FIELDS = {
    "request_id": "request_id_link",
    "problem_id": "problem_id_link",
    "linked_request_id": "linked_request_id_link",
}

PRIORITY_LABELS = {
    "alta": "High",
    "media": "Medium",
    "baja": "Low",
    "crítica": "Critical",
    "critica": "Critical",
}

RECURRENT = "Recurrente"
CLOSED = "Closed"
L3_BACKLOG = "In L3 Backlog"

OBS_CLOSED_WITHOUT_INFO = "Closed request must have informacionAdicionalReporte"
OBS_WAITING_FOR_CLIENT = "Report should not include records with 'Esperando El Cliente' status"
OBS_MISSING_CATEGORIZATION = "Record must have categorization and cannot be 'No asignado'"


class RowDerivationError(ValueError):
    """A single row cannot be derived."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class RecordDerivationPipeline:
    """Derives report records from raw ticket rows.

    Args:
        business_units: Business-unit RuleSet snapshot
        statuses: Status RuleSet snapshot
        window: Date window resolved for the batch scope
        aggregator: Precomputed parent/child link counts
        levels: Level RuleSet snapshot (looked up from the canonical status)
        locked_statuses: ``{request_id: canonical status}`` of manual overrides
            from the previous import of this scope
        reporting: Reporting constants (timezone, placeholders, link param)
        fallback: Membership test used when the window is disabled
    """

    def __init__(
        self,
        business_units: RuleSet,
        statuses: RuleSet,
        window: DateWindow,
        aggregator: RelationshipAggregator | None = None,
        levels: RuleSet | None = None,
        locked_statuses: Mapping[str, str] | None = None,
        reporting: ReportingConfig | None = None,
        fallback: Fallback | None = None,
    ):
        self.reporting = reporting or ReportingConfig()
        self.business_units = business_units
        self.statuses = statuses
        if levels is None:
            levels = RuleSet(RuleFamily.LEVEL, [], default=self.reporting.unknown_level)
        self.levels = levels
        self.window = window
        self.aggregator = aggregator if aggregator is not None else RelationshipAggregator()
        self.locked_statuses = dict(locked_statuses or {})
        self.fallback = fallback

        self._placeholder = self.reporting.unassigned_placeholder.strip().lower()
        self._link_id_re = re.compile(rf"{re.escape(self.reporting.link_id_param)}=(\d+)")

    # -- batch ----------------------------------------------------------------

    def derive(
        self, raw_rows: Iterable[RawTicketRow | Mapping[str, Any]], scope: Scope
    ) -> DerivationResult:
        """Derive every row, collecting failures instead of raising."""
        result = DerivationResult()
        seen: dict[str, int] = {}

        for row_number, raw in enumerate(raw_rows, start=1):
            try:
                record = self.derive_row(raw, scope)
            except RowDerivationError as e:
                result.row_errors.append(RowError(row_number, e.field, e.message))
                continue

            first = seen.get(record.request_id)
            if first is not None:
                result.row_errors.append(
                    RowError(
                        row_number,
                        "request_id",
                        f"Duplicate request_id {record.request_id} (first seen in row {first})",
                    )
                )
                continue

            seen[record.request_id] = row_number
            result.succeeded.append(record)

        logger.info(
            f"Derived {len(result.succeeded)} {scope.value} records, "
            f"{len(result.row_errors)} row errors ({result.status.value})"
        )
        return result

    # -- single row -----------------------------------------------------------

    def derive_row(self, raw: RawTicketRow | Mapping[str, Any], scope: Scope) -> DerivedRecord:
        """Derive one record.

        Raises:
            RowDerivationError: If a required field is missing or malformed
        """
        data = self._clean(raw)
        self._recover_ids(data)

        for name in REQUIRED_FIELDS:
            if not data.get(name):
                raise RowDerivationError(name, f"{name} is required")

        request_id = data["request_id"]

        source_text = data.get("applications") or data.get("module")
        business_unit = self.business_units.classify(source_text)
        if business_unit is None:
            business_unit = self.reporting.unknown_business_unit

        locked_status = self.locked_statuses.get(request_id)
        if locked_status is not None:
            canonical = locked_status
        else:
            canonical = self.statuses.classify(data["request_status"]) or data["request_status"]

        try:
            created = parse_wire_timestamp(data["created_time"])
            in_range = contains(self.window, created, self.fallback, self.reporting.timezone)
        except TimestampFormatError as e:
            raise RowDerivationError("created_time", str(e)) from e

        linked_count = self.aggregator.linked_count(request_id)

        # Backlog tickets are reported as unassigned whatever the export says
        if canonical == L3_BACKLOG:
            additional_info_report = self.reporting.unassigned_placeholder
        else:
            additional_info_report = data.get("additional_info")

        return DerivedRecord(
            **data,
            scope=scope,
            business_unit=business_unit,
            request_status_canonical=canonical,
            in_date_range=in_range,
            linked_count=linked_count,
            status_locked=locked_status is not None,
            level=self.levels.classify(canonical),
            priority_report=self._priority_label(data.get("priority")),
            recurrence_computed=RECURRENT if data.get("linked_request_id") else data.get("recurrence"),
            additional_info_report=additional_info_report,
            day=created.day,
            week=created.isocalendar()[1],
            message=self._message(data.get("linked_request_id"), linked_count),
            observations=self._observations(
                canonical, additional_info_report, data.get("categorization")
            ),
        )

    def _clean(self, raw: RawTicketRow | Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(raw, RawTicketRow):
            try:
                raw = RawTicketRow.model_validate(dict(raw))
            except ValidationError as e:
                first = e.errors()[0]
                field = str(first["loc"][0]) if first.get("loc") else "row"
                raise RowDerivationError(field, first["msg"]) from e

        cleaned: dict[str, Any] = {}
        for name, value in raw.model_dump().items():
            if isinstance(value, str):
                value = value.strip()
                if not value or value.lower() == self._placeholder:
                    value = None
            cleaned[name] = value
        return cleaned

    def _recover_ids(self, data: dict[str, Any]) -> None:
        for id_field, link_field in LINKED_ID_FIELDS.items():
            if data.get(id_field) or not data.get(link_field):
                continue
            match = self._link_id_re.search(data[link_field])
            if match:
                data[id_field] = match.group(1)

    @staticmethod
    def _priority_label(priority: str | None) -> str | None:
        if not priority:
            return None
        return PRIORITY_LABELS.get(priority.lower(), priority)

    @staticmethod
    def _message(linked_request_id: str | None, linked_count: int) -> str:
        if not linked_request_id and linked_count == 0:
            return ""
        return f"{linked_request_id or 'N/A'} --> {linked_count} Linked tickets"

    def _observations(
        self, canonical: str, additional_info_report: str | None, categorization: str | None
    ) -> str | None:
        found = []
        if canonical == CLOSED and not additional_info_report:
            found.append(OBS_CLOSED_WITHOUT_INFO)
        if canonical.lower() == self.reporting.lockable_status.lower():
            found.append(OBS_WAITING_FOR_CLIENT)
        if not categorization:
            found.append(OBS_MISSING_CATEGORIZATION)
        return "; ".join(found) if found else None
