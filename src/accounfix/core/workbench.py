"""Session workflows over the error store, the AI gateway and the ERP.

This module implements the Workbench class that drives the user-facing
workflows of a session:
1. Creation - validate a draft, classify it, store the record
2. Chat - optimistic user message, AI reply (or placeholder)
3. ERP sync - two-phase "started" / "completed" notification
4. Dashboard and CSV report export

Store mutations happen synchronously once an awaited call settles; the AI
and ERP calls are the only points where a workflow suspends.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from accounfix.config.schema import WorkbenchConfig
from accounfix.core.report import write_csv
from accounfix.models.error import (
    ChatMessage,
    ChatRole,
    DraftValidationError,
    ErrorDraft,
    ErrorRecord,
)
from accounfix.models.stats import DashboardStats
from accounfix.utils.async_helpers import (
    AccountFixError,
    AIServiceError,
    IntegrationError,
    SecurityError,
)
from accounfix.utils.logging import LogEventNames
from accounfix.utils.metrics import Timer, get_metrics
from accounfix.utils.security import validate_image_payload

if TYPE_CHECKING:
    from accounfix.core.store import ErrorStore
    from accounfix.interfaces.ai import AIGateway
    from accounfix.interfaces.erp import ERPSyncAdapter

log = structlog.get_logger()

CHAT_BUSY_MESSAGE = "The AI assistant is busy right now, please try again."

Notifier = Callable[[str], None]


class WorkbenchError(AccountFixError):
    """Base exception for workbench errors."""


class RecordNotFoundError(WorkbenchError):
    """No record with the requested id."""


class WorkbenchBusyError(WorkbenchError):
    """The same workflow is already in flight."""


def _ignore(message: str) -> None:
    pass


class Workbench:
    """Non-visual half of the presentation shell.

    Responsibilities:
    - Run the creation, chat and ERP sync workflows
    - Track which workflows are in flight and refuse duplicates
    - Produce dashboard data and the CSV report

    Example:
        workbench = Workbench(store, gateway, erp, config.workbench, notify=print)
        record = await workbench.submit_error(ErrorDraft(title="...", description="..."))
        await workbench.send_chat_message(record.id, "How do I reconcile this?")
    """

    def __init__(
        self,
        store: ErrorStore,
        ai: AIGateway,
        erp: ERPSyncAdapter,
        config: WorkbenchConfig,
        notify: Notifier | None = None,
    ) -> None:
        """Initialize the Workbench.

        Args:
            store: Session error store
            ai: AI gateway for classification and chat
            erp: ERP adapter for record sync
            config: Workbench configuration
            notify: Receives user-facing sync notifications
        """
        self._store = store
        self._ai = ai
        self._erp = erp
        self._config = config
        self._notify = notify or _ignore

        self._analyzing = False
        self._pending_chats: set[str] = set()
        self._pending_syncs: set[str] = set()

    @property
    def store(self) -> ErrorStore:
        return self._store

    @property
    def is_analyzing(self) -> bool:
        """True while a submitted draft is being classified."""
        return self._analyzing

    @property
    def pending_chats(self) -> frozenset[str]:
        """Ids of records awaiting an AI chat reply."""
        return frozenset(self._pending_chats)

    @property
    def pending_syncs(self) -> frozenset[str]:
        """Ids of records being pushed to the ERP."""
        return frozenset(self._pending_syncs)

    def _require(self, record_id: str) -> ErrorRecord:
        record = self._store.get(record_id)
        if record is None:
            log.info(LogEventNames.RECORD_NOT_FOUND, record_id=record_id)
            raise RecordNotFoundError(f"No error record with id {record_id}")
        return record

    async def submit_error(self, draft: ErrorDraft) -> ErrorRecord:
        """Classify a draft and store it as a new record.

        The record is created whatever the classification outcome; a
        failed classification contributes the fallback values.

        Raises:
            WorkbenchBusyError: If another draft is still being classified.
            DraftValidationError: If title or description is blank.
            ValidationError: If the attached image is not a valid JPEG payload.
        """
        if self._analyzing:
            raise WorkbenchBusyError("Another error is still being analyzed")

        try:
            draft.validate()
            if draft.image_base64:
                draft = dataclasses.replace(
                    draft, image_base64=validate_image_payload(draft.image_base64)
                )
        except (DraftValidationError, SecurityError) as e:
            get_metrics().drafts_rejected.inc()
            log.info(LogEventNames.DRAFT_REJECTED, reason=str(e))
            raise

        self._analyzing = True
        try:
            analysis = await self._ai.classify(draft.description, draft.image_base64)
        finally:
            self._analyzing = False

        log.info(
            LogEventNames.CLASSIFICATION_COMPLETE,
            category=analysis.category.value,
            priority=analysis.priority.value,
            fallback=analysis.is_fallback,
        )
        return self._store.create(draft, analysis)

    async def send_chat_message(self, record_id: str, text: str) -> ChatMessage | None:
        """Send a user message about a record and store the AI reply.

        The user message is appended before the AI call starts. A blank
        reply is stored as CHAT_BUSY_MESSAGE.

        Returns:
            The stored reply, or None if text is blank or the record is
            gone by the time the reply arrives.

        Raises:
            RecordNotFoundError: If no record has the id.
            WorkbenchBusyError: If a reply for this record is still pending.
            AIServiceError: If the AI call fails; only the user message is kept.
        """
        if not text.strip():
            return None

        record = self._require(record_id)
        if record_id in self._pending_chats:
            raise WorkbenchBusyError(f"Still waiting for a reply on record {record_id}")

        prior_history = record.chat_history
        self._store.append_chat_message(record_id, ChatMessage(role=ChatRole.USER, text=text))

        self._pending_chats.add(record_id)
        try:
            reply = await self._ai.chat(record.chat_context, prior_history, text)
        except AIServiceError as e:
            get_metrics().chat_failures.inc()
            log.warning(LogEventNames.CHAT_REQUEST_ERROR, record_id=record_id, error=str(e))
            raise
        except SecurityError as e:
            get_metrics().chat_failures.inc()
            log.warning(LogEventNames.CHAT_REQUEST_ERROR, record_id=record_id, error=str(e))
            raise AIServiceError(f"Chat request blocked: {e}") from e
        except Exception as e:
            get_metrics().chat_failures.inc()
            log.error(
                LogEventNames.CHAT_REQUEST_ERROR,
                record_id=record_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise AIServiceError(f"Chat request failed: {e}") from e
        finally:
            self._pending_chats.discard(record_id)

        if not reply.strip():
            reply = CHAT_BUSY_MESSAGE
        message = ChatMessage(role=ChatRole.MODEL, text=reply)
        if self._store.append_chat_message(record_id, message) is None:
            log.info(LogEventNames.CHAT_REPLY_DISCARDED, record_id=record_id)
            return None
        return message

    async def sync_to_erp(self, record_id: str) -> str:
        """Push a record to the ERP and remember the identifier it assigns.

        Raises:
            RecordNotFoundError: If no record has the id.
            WorkbenchBusyError: If this record is already being pushed.
            IntegrationError: If the push fails; the record is left unchanged.
        """
        record = self._require(record_id)
        if record_id in self._pending_syncs:
            raise WorkbenchBusyError(f"Record {record_id} is already being synced")

        system = self._erp.system_name
        log.info(LogEventNames.ERP_SYNC_STARTED, record_id=record_id, system=system)
        self._notify(f"Connecting to {system} to sync record {record_id}...")

        metrics = get_metrics()
        self._pending_syncs.add(record_id)
        try:
            with Timer(metrics.erp_sync_duration):
                external_id = await self._erp.push(record)
        except IntegrationError as e:
            metrics.erp_sync_failures.inc()
            log.warning(LogEventNames.ERP_SYNC_FAILED, record_id=record_id, error=str(e))
            self._notify(f"Sync of record {record_id} to {system} failed: {e}")
            raise
        finally:
            self._pending_syncs.discard(record_id)

        self._store.mark_synced(record_id, external_id)
        metrics.erp_syncs.inc()
        log.info(LogEventNames.ERP_SYNC_COMPLETED, record_id=record_id, external_id=external_id)
        self._notify(f"Record {record_id} pushed to {system} as {external_id}.")
        return external_id

    def dashboard(self) -> tuple[DashboardStats, list[ErrorRecord]]:
        """Current statistics and the most recent records."""
        return self._store.stats(), self._store.recent(self._config.recent_limit)

    def export_report(self, path: Path | None = None) -> Path:
        """Write the CSV report of every record in store order.

        Raises:
            OSError: If the file cannot be written.
        """
        target = path or self._config.export_dir / self._config.export_filename
        return write_csv(self._store.records, target)
