"""Sample records loaded at session start."""

from __future__ import annotations

from datetime import datetime, timedelta

from accounfix.models.error import ErrorCategory, ErrorPriority, ErrorRecord, ErrorStatus


def demo_records(now: datetime) -> list[ErrorRecord]:
    """Two sample records in store order, dated relative to now."""
    return [
        ErrorRecord(
            id="2",
            title="Invalid supplier invoice",
            description=(
                "Invoice no. 001234 from supplier Company X shows the wrong company "
                "address. An adjustment invoice must be requested."
            ),
            category=ErrorCategory.INVOICE,
            priority=ErrorPriority.MEDIUM,
            status=ErrorStatus.PROCESSING,
            created_at=now - timedelta(days=1),
            reporter="Tran Thi B",
            voucher_no="HD001234",
        ),
        ErrorRecord(
            id="1",
            title="VCB opening balance mismatch",
            description=(
                "Opening balance of account 112101 does not match the Vietcombank "
                "statement for 01/2024. Difference of 2,500,000."
            ),
            category=ErrorCategory.LEDGER,
            priority=ErrorPriority.HIGH,
            status=ErrorStatus.PENDING,
            created_at=now - timedelta(days=3),
            reporter="Nguyen Van A",
            amount=2500000,
        ),
    ]
