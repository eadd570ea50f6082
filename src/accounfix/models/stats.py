"""Data models for dashboard statistics."""

from collections.abc import Iterable
from dataclasses import dataclass

from .error import ErrorRecord, ErrorStatus


@dataclass(frozen=True)
class DashboardStats:
    """Record counts, overall and per status."""

    total: int
    pending: int
    processing: int
    fixed: int
    rejected: int

    @classmethod
    def from_records(cls, records: Iterable[ErrorRecord]) -> "DashboardStats":
        """Count records in a single pass."""
        counts = dict.fromkeys(ErrorStatus, 0)
        total = 0
        for record in records:
            counts[record.status] += 1
            total += 1
        return cls(
            total=total,
            pending=counts[ErrorStatus.PENDING],
            processing=counts[ErrorStatus.PROCESSING],
            fixed=counts[ErrorStatus.FIXED],
            rejected=counts[ErrorStatus.REJECTED],
        )

    def for_status(self, status: ErrorStatus) -> int:
        """Count for a single status."""
        return {
            ErrorStatus.PENDING: self.pending,
            ErrorStatus.PROCESSING: self.processing,
            ErrorStatus.FIXED: self.fixed,
            ErrorStatus.REJECTED: self.rejected,
        }[status]
