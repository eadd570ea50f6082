"""CSV summary report of the session's error records."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from pathlib import Path

import structlog

from accounfix.models.error import ErrorRecord
from accounfix.utils.logging import LogEventNames
from accounfix.utils.metrics import get_metrics

log = structlog.get_logger()

REPORT_HEADER = ("ID", "Title", "Category", "Priority", "Status", "Reporter", "CreatedDate")


def report_row(record: ErrorRecord) -> tuple[str, ...]:
    """One CSV row; CreatedDate is the ISO calendar date of creation."""
    return (
        record.id,
        record.title,
        record.category.value,
        record.priority.value,
        record.status.value,
        record.reporter,
        record.created_at.date().isoformat(),
    )


def render_csv(records: Iterable[ErrorRecord]) -> str:
    """Render records, in the order given, as CSV text with a header row.

    Fields containing commas, quotes or newlines are quoted.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(REPORT_HEADER)
    writer.writerows(report_row(record) for record in records)
    return buffer.getvalue()


def write_csv(records: Iterable[ErrorRecord], path: Path) -> Path:
    """
    Write the CSV report to path, replacing any existing file.

    Args:
        records: Records in store order
        path: Destination file; its directory must exist

    Returns:
        The path written

    Raises:
        OSError: If the file cannot be written
    """
    records = list(records)
    path.write_text(render_csv(records), encoding="utf-8")
    get_metrics().reports_exported.inc()
    log.info(LogEventNames.REPORT_EXPORTED, path=str(path), rows=len(records))
    return path
