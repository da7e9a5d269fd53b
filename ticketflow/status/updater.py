"""Manual status override for records awaiting the customer.

Only a record whose canonical status is the lockable status ("Esperando El
Cliente") may be changed by hand, and only once: the update sets
``status_locked`` so later imports keep the manual value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import ReportingConfig, get_config
from ticketflow.db.repositories import RecordRepository
from ticketflow.models import Scope

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
NOT_ELIGIBLE = "not_eligible"
ALREADY_LOCKED = "already_locked"
EMPTY_STATUS = "empty_status"


@dataclass(frozen=True)
class StatusUpdateResult:
    success: bool
    reason: str | None = None
    code: str | None = None


async def update_status(
    session: AsyncSession,
    request_id: str,
    new_status: str,
    scope: Scope = Scope.MONTHLY,
    reporting: ReportingConfig | None = None,
) -> StatusUpdateResult:
    """Apply a manual status to ``request_id`` and lock it.

    Rejections are returned as a failed result with a human-readable reason.
    """
    reporting = reporting or get_config().reporting
    new_status = (new_status or "").strip()
    if not new_status:
        return StatusUpdateResult(False, "New status cannot be empty", EMPTY_STATUS)

    repo = RecordRepository(session)
    record = await repo.find_by_request_id(request_id, scope)
    if record is None:
        return StatusUpdateResult(False, f"Record {request_id} not found", NOT_FOUND)

    if record.status_locked:
        return StatusUpdateResult(
            False, f"Status of record {request_id} was already modified and is locked", ALREADY_LOCKED
        )

    if record.request_status_canonical.strip().lower() != reporting.lockable_status.lower():
        return StatusUpdateResult(
            False,
            f"Only '{reporting.lockable_status}' status can be modified "
            f"(record {request_id} is '{record.request_status_canonical}')",
            NOT_ELIGIBLE,
        )

    await repo.update_status(request_id, new_status, scope)
    logger.info(f"Status of {request_id} ({scope.value}) set to {new_status!r} and locked")
    return StatusUpdateResult(True)
