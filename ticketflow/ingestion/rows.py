"""Row loading for ticket and link exports.

Reads CSV/XLSX files whose headers already carry the field names of
RawTicketRow / ParentChildLink. Header mapping and hyperlink extraction
happen upstream; rows are returned as plain dicts for the pipeline.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

MAX_FILE_SIZE_MB = 50
MAX_ROWS = 50000

RECORD_REQUIRED_COLUMNS = {"request_id", "created_time", "request_status"}
LINK_REQUIRED_COLUMNS = {"parent_request_id", "child_request_id"}


def read_frame(file_path: Path) -> pd.DataFrame:
    """Read a CSV or XLSX export into a DataFrame of text cells.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file is too large or in an unsupported format
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Export file not found: {file_path}")

    file_size_mb = file_path.stat().st_size / (1024 * 1024)
    if file_size_mb > MAX_FILE_SIZE_MB:
        raise ValueError(
            f"File too large ({file_size_mb:.1f}MB). Maximum allowed: {MAX_FILE_SIZE_MB}MB"
        )

    suffix = file_path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(file_path, dtype=str)
    elif suffix in (".xlsx", ".xls"):
        df = pd.read_excel(file_path, dtype=str)
    else:
        raise ValueError(f"Unsupported file format: {file_path.suffix}. Use CSV or XLSX.")

    if len(df) > MAX_ROWS:
        raise ValueError(f"Too many rows ({len(df):,}). Maximum allowed: {MAX_ROWS:,}")

    df.columns = [str(c).strip() for c in df.columns]
    return df


def _records(df: pd.DataFrame, required: set[str]) -> list[dict[str, Any]]:
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    # NaN cells become None
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")


def load_rows(file_path: Path) -> list[dict[str, Any]]:
    """Load ticket rows for ``RecordDerivationPipeline.derive``."""
    return _records(read_frame(file_path), RECORD_REQUIRED_COLUMNS)


def load_links(file_path: Path) -> list[dict[str, Any]]:
    """Load parent/child link rows."""
    return _records(read_frame(file_path), LINK_REQUIRED_COLUMNS)
