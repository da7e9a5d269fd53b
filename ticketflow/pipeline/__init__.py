"""Record derivation and import pipeline."""

from ticketflow.pipeline.derivation import RecordDerivationPipeline
from ticketflow.pipeline.orchestrator import ImportOrchestrator
from ticketflow.pipeline.types import DerivationResult, ImportResult, ImportStatus, RowError

__all__ = [
    "DerivationResult",
    "ImportOrchestrator",
    "ImportResult",
    "ImportStatus",
    "RecordDerivationPipeline",
    "RowError",
]
