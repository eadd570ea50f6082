"""In-memory store of error records for one session.

The store is the single source of truth for the session. Every mutation
swaps the affected record for an updated copy, so callers holding an
older ErrorRecord never see it change underneath them.
"""

from __future__ import annotations

import dataclasses
import itertools
from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime

import structlog

from accounfix.models.analysis import AnalysisResult
from accounfix.models.error import (
    ChatMessage,
    ErrorCategory,
    ErrorDraft,
    ErrorPriority,
    ErrorRecord,
    ErrorStatus,
)
from accounfix.models.stats import DashboardStats
from accounfix.utils.async_helpers import AccountFixError
from accounfix.utils.logging import LogEventNames
from accounfix.utils.metrics import get_metrics

log = structlog.get_logger()

DEFAULT_REPORTER = "Admin Web"


class StoreError(AccountFixError):
    """Base exception for error store failures."""


class InvalidStatusError(StoreError, ValueError):
    """Status value is not one of the known statuses."""


class DuplicateRecordError(StoreError):
    """Two records share an id."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ErrorStore:
    """Ordered collection of error records, most recent first.

    Unknown ids are not an error for the mutating operations: they return
    None and leave the store untouched, so a late asynchronous result for
    a record that no longer exists is simply dropped.

    Example:
        store = ErrorStore()
        record = store.create(ErrorDraft(title="Test A", description="Bank off by 100"))
        store.update_status(record.id, "FIXED")
        print(store.stats().fixed)  # 1
    """

    def __init__(
        self,
        records: Iterable[ErrorRecord] = (),
        default_reporter: str = DEFAULT_REPORTER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the store.

        Args:
            records: Pre-loaded records in store order (most recent first).
            default_reporter: Reporter used when a draft names none.
            clock: Source of creation timestamps.

        Raises:
            DuplicateRecordError: If two pre-loaded records share an id.
        """
        self._records: list[ErrorRecord] = list(records)
        seen: set[str] = set()
        for record in self._records:
            if record.id in seen:
                raise DuplicateRecordError(f"Duplicate record id: {record.id}")
            seen.add(record.id)

        self._default_reporter = default_reporter
        self._clock = clock
        # Ids are never reused, even for ids only ever seen at load time
        start = max((int(r.id) for r in self._records if r.id.isdigit()), default=0) + 1
        self._ids = itertools.count(start)
        self._selected_id: str | None = None
        get_metrics().records_held.set(len(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ErrorRecord]:
        return iter(list(self._records))

    @property
    def records(self) -> tuple[ErrorRecord, ...]:
        """Snapshot of all records in store order."""
        return tuple(self._records)

    def get(self, record_id: str) -> ErrorRecord | None:
        """Look up a record by id."""
        index = self._index_of(record_id)
        return None if index is None else self._records[index]

    def recent(self, limit: int = 5) -> list[ErrorRecord]:
        """The most recently created records."""
        return self._records[:limit]

    def _index_of(self, record_id: str) -> int | None:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        return None

    def _replace(self, record_id: str, **changes: object) -> ErrorRecord | None:
        index = self._index_of(record_id)
        if index is None:
            log.debug(LogEventNames.RECORD_NOT_FOUND, record_id=record_id)
            return None
        updated = dataclasses.replace(self._records[index], **changes)
        self._records[index] = updated
        return updated

    def create(self, draft: ErrorDraft, analysis: AnalysisResult | None = None) -> ErrorRecord:
        """Add a new Pending record at the head of the store.

        Args:
            draft: Validated creation input.
            analysis: Classification to copy category, priority and
                suggestion from. Without one the record is Other/Medium.

        Returns:
            The stored record.

        Raises:
            DraftValidationError: If title or description is blank.
        """
        draft.validate()

        record = ErrorRecord(
            id=str(next(self._ids)),
            title=draft.title.strip(),
            description=draft.description.strip(),
            category=analysis.category if analysis else ErrorCategory.OTHER,
            priority=analysis.priority if analysis else ErrorPriority.MEDIUM,
            status=ErrorStatus.PENDING,
            created_at=self._clock(),
            reporter=draft.reporter or self._default_reporter,
            amount=draft.amount,
            voucher_no=draft.voucher_no,
            image_base64=draft.image_base64,
            ai_suggestion=analysis.suggestion if analysis else None,
        )
        self._records.insert(0, record)

        metrics = get_metrics()
        metrics.records_created.inc(labels={"category": record.category.value})
        metrics.records_held.set(len(self._records))
        log.info(
            LogEventNames.RECORD_CREATED,
            record_id=record.id,
            category=record.category.value,
            priority=record.priority.value,
        )
        return record

    def update_status(self, record_id: str, status: ErrorStatus | str) -> ErrorRecord | None:
        """Move a record to a new status. Any transition is allowed.

        Raises:
            InvalidStatusError: If status is not a known status.
        """
        try:
            new_status = ErrorStatus.parse(status)
        except ValueError as e:
            raise InvalidStatusError(str(e)) from e

        updated = self._replace(record_id, status=new_status)
        if updated is not None:
            get_metrics().status_updates.inc(labels={"status": new_status.value})
            log.info(
                LogEventNames.RECORD_STATUS_UPDATED,
                record_id=record_id,
                status=new_status.value,
            )
        return updated

    def append_chat_message(self, record_id: str, message: ChatMessage) -> ErrorRecord | None:
        """Append a message to a record's chat history."""
        record = self.get(record_id)
        if record is None:
            log.debug(LogEventNames.RECORD_NOT_FOUND, record_id=record_id)
            return None
        updated = self._replace(record_id, chat_history=(*record.chat_history, message))
        get_metrics().chat_messages.inc(labels={"role": message.role.value})
        log.debug(LogEventNames.CHAT_MESSAGE_APPENDED, record_id=record_id, role=message.role.value)
        return updated

    def mark_synced(self, record_id: str, external_id: str) -> ErrorRecord | None:
        """Record the identifier an ERP assigned to the record."""
        return self._replace(record_id, external_sync_id=external_id)

    def stats(self) -> DashboardStats:
        """Current counts, recomputed on every call."""
        return DashboardStats.from_records(self._records)

    def filter(self, query: str) -> list[ErrorRecord]:
        """Records whose title or description contains query, ignoring case.

        Only the empty string means "no filter"; whitespace is matched literally.
        """
        if not query:
            return list(self._records)
        return [record for record in self._records if record.matches(query)]

    # Selection

    def select(self, record_id: str) -> ErrorRecord | None:
        """Make a record the selected one. Unknown ids clear the selection."""
        record = self.get(record_id)
        self._selected_id = record.id if record else None
        return record

    @property
    def selected(self) -> ErrorRecord | None:
        """The current version of the selected record."""
        return None if self._selected_id is None else self.get(self._selected_id)

    def clear_selection(self) -> None:
        self._selected_id = None
