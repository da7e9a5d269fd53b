"""Import orchestrator - derives and stores one scope's record set.

Key features:
- Snapshot-based: rule sets, the resolved window, link counts and locked
  statuses are loaded once per run, then rows are derived in memory
- Resilient: row failures are collected, never abort the batch
- Transactional: the scope's records are dropped and reinserted in the
  caller's transaction; a storage failure propagates and rolls back
- Auditable: every run is logged to the import_log table
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import ReportingConfig, get_config
from ticketflow.db.models import ImportLogModel
from ticketflow.db.repositories import LinkRepository, RecordRepository
from ticketflow.models import ParentChildLink, RawTicketRow, RuleFamily, Scope
from ticketflow.pipeline.derivation import RecordDerivationPipeline
from ticketflow.pipeline.types import DerivationResult, ImportResult, ImportStatus
from ticketflow.relationships.aggregator import RelationshipAggregator
from ticketflow.rules.ruleset import RuleSetCache, get_rule_cache
from ticketflow.rules.service import repository_loader as rule_loader
from ticketflow.windows.registry import WindowRegistry, get_window_registry
from ticketflow.windows.registry import repository_loader as window_loader

logger = structlog.get_logger()


class ImportOrchestrator:
    """Runs record and link imports against one database session."""

    def __init__(
        self,
        session: AsyncSession,
        rule_cache: RuleSetCache | None = None,
        registry: WindowRegistry | None = None,
        reporting: ReportingConfig | None = None,
    ):
        self.session = session
        self.reporting = reporting or get_config().reporting
        self.rule_cache = rule_cache or get_rule_cache()
        self.registry = registry or get_window_registry()
        self._load_rules = rule_loader(session)
        self._load_windows = window_loader(session)
        self.records = RecordRepository(session)
        self.links = LinkRepository(session)
        self.run_timestamp = datetime.now(timezone.utc)

    async def build_pipeline(self, scope: Scope) -> RecordDerivationPipeline:
        """Load every snapshot the derivation of ``scope`` depends on."""
        return RecordDerivationPipeline(
            business_units=await self.rule_cache.get(RuleFamily.BUSINESS_UNIT, self._load_rules),
            statuses=await self.rule_cache.get(RuleFamily.STATUS, self._load_rules),
            levels=await self.rule_cache.get(RuleFamily.LEVEL, self._load_rules),
            window=await self.registry.resolve(scope, loader=self._load_windows),
            aggregator=RelationshipAggregator(await self.links.get_all()),
            locked_statuses=await self.records.locked_statuses(scope),
            reporting=self.reporting,
        )

    async def derive(
        self, raw_rows: Iterable[RawTicketRow | Mapping[str, Any]], scope: Scope
    ) -> DerivationResult:
        """Derive ``raw_rows`` for ``scope`` without storing anything."""
        pipeline = await self.build_pipeline(scope)
        return pipeline.derive(raw_rows, scope)

    async def import_records(
        self,
        raw_rows: Iterable[RawTicketRow | Mapping[str, Any]],
        scope: Scope,
        source_name: str = "records",
    ) -> tuple[ImportResult, DerivationResult]:
        """Derive ``raw_rows`` and replace the stored record set of ``scope``.

        A batch with no derivable rows leaves the stored set untouched.

        Raises:
            SQLAlchemyError: If the replace fails (caller's transaction rolls back)
        """
        structlog.contextvars.bind_contextvars(import_run=str(uuid4()), scope=scope.value)
        started = time.perf_counter()
        logger.info("import_started", source=source_name)

        try:
            derivation = await self.derive(raw_rows, scope)
            result = ImportResult(
                source_name=source_name,
                status=derivation.status,
                records_failed=len(derivation.row_errors),
            )

            if derivation.status is ImportStatus.FAILED:
                result.message = (
                    f"No rows could be derived ({len(derivation.row_errors)} row errors); "
                    f"existing {scope.value} records kept"
                )
            else:
                result.records_inserted = await self.records.replace_all(
                    scope, derivation.succeeded
                )
                result.message = (
                    f"Imported {result.records_inserted} {scope.value} records, "
                    f"{result.records_failed} failed"
                )

            if derivation.row_errors:
                limit = self.reporting.error_preview_limit
                result.error_details = {
                    "row_errors": [
                        {"row": e.row, "field": e.field, "message": e.message}
                        for e in derivation.error_preview(limit)
                    ],
                    "total_errors": len(derivation.row_errors),
                }

            result.duration_seconds = time.perf_counter() - started
            await self._log_result(result, scope)

            log = logger.warning if result.status is ImportStatus.FAILED else logger.info
            log(
                "import_finished",
                status=result.status.value,
                inserted=result.records_inserted,
                failed=result.records_failed,
                duration_seconds=round(result.duration_seconds, 3),
            )
            return result, derivation
        finally:
            structlog.contextvars.unbind_contextvars("import_run", "scope")

    async def import_links(
        self, links: Iterable[ParentChildLink | Mapping[str, Any]], source_name: str = "links"
    ) -> ImportResult:
        """Replace the whole parent/child link set.

        Link rows missing either id are counted as failed and skipped.
        """
        started = time.perf_counter()
        parsed: list[ParentChildLink] = []
        failed = 0
        for link in links:
            if isinstance(link, ParentChildLink):
                parsed.append(link)
                continue
            try:
                parsed.append(ParentChildLink.model_validate(dict(link)))
            except ValidationError:
                failed += 1

        if not parsed:
            result = ImportResult(
                source_name=source_name,
                status=ImportStatus.FAILED,
                records_failed=failed,
                message="No valid links; existing links kept",
            )
        else:
            inserted = await self.links.replace_all(parsed)
            result = ImportResult(
                source_name=source_name,
                status=ImportStatus.PARTIAL_SUCCESS if failed else ImportStatus.SUCCESS,
                records_inserted=inserted,
                records_failed=failed,
                message=(
                    f"Imported {inserted} links ({len(parsed) - inserted} duplicates skipped, "
                    f"{failed} invalid)"
                ),
            )

        result.duration_seconds = time.perf_counter() - started
        await self._log_result(result, scope=None)
        logger.info(
            "links_imported",
            status=result.status.value,
            inserted=result.records_inserted,
            failed=failed,
        )
        return result

    async def _log_result(self, result: ImportResult, scope: Scope | None) -> None:
        """Log import result to the import_log table."""
        self.session.add(
            ImportLogModel(
                id=uuid4(),
                run_timestamp=self.run_timestamp,
                source_name=result.source_name,
                scope=scope.value if scope else None,
                status=result.status.value,
                records_inserted=result.records_inserted,
                records_failed=result.records_failed,
                message=result.message,
                error_details=result.error_details,
                duration_seconds=result.duration_seconds,
            )
        )
        await self.session.flush()
