"""Tests for the session workflows."""

import asyncio
import csv

import pytest

from accounfix.core.workbench import (
    CHAT_BUSY_MESSAGE,
    RecordNotFoundError,
    Workbench,
    WorkbenchBusyError,
)
from accounfix.models.analysis import AnalysisResult
from accounfix.models.error import (
    ChatRole,
    DraftValidationError,
    ErrorDraft,
    ErrorPriority,
    ErrorStatus,
)
from accounfix.utils.async_helpers import AIServiceError, IntegrationError, TimeoutError
from accounfix.utils.metrics import get_metrics
from accounfix.utils.security import SecurityError, ValidationError


class TestSubmitError:
    """Test the creation workflow."""

    async def test_creates_classified_record(self, workbench, fake_ai, draft, analysis):
        """Test that a valid draft is classified and stored."""
        record = await workbench.submit_error(draft)

        fake_ai.classify.assert_awaited_once_with("bank reconciliation off by 100", None)
        assert workbench.store.records == (record,)
        assert record.status is ErrorStatus.PENDING
        assert record.priority is ErrorPriority.HIGH
        assert record.ai_suggestion == analysis.suggestion

    async def test_fallback_classification_still_creates(self, workbench, fake_ai, draft):
        """Test creation when the AI gateway fails and returns the fallback."""
        fake_ai.classify.return_value = AnalysisResult.fallback()

        record = await workbench.submit_error(draft)

        assert len(workbench.store) == 1
        assert record.title == "Test A"
        assert record.status is ErrorStatus.PENDING
        assert record.priority is ErrorPriority.MEDIUM
        assert record.ai_suggestion == "Automatic analysis unavailable, review manually."

    async def test_blank_draft_rejected_before_ai_call(self, workbench, fake_ai):
        """Test that a blank title never reaches the AI gateway."""
        with pytest.raises(DraftValidationError):
            await workbench.submit_error(ErrorDraft(title=" ", description="bank off"))

        fake_ai.classify.assert_not_called()
        assert len(workbench.store) == 0
        assert get_metrics().drafts_rejected.total() == 1

    async def test_image_forwarded(self, workbench, fake_ai, jpeg_base64):
        """Test that a JPEG attachment is passed to the classifier."""
        draft = ErrorDraft(
            title="Scanned invoice",
            description="Totals do not add up",
            image_base64=f"  {jpeg_base64}\n",
        )
        record = await workbench.submit_error(draft)

        fake_ai.classify.assert_awaited_once_with("Totals do not add up", jpeg_base64)
        assert record.image_base64 == jpeg_base64

    @pytest.mark.parametrize("payload", ["not base64!!", "iVBORw0KGgoAAAANSUhEUg=="])
    async def test_invalid_image_rejected(self, workbench, fake_ai, payload):
        """Test that non-JPEG or undecodable attachments are refused."""
        draft = ErrorDraft(title="Scan", description="Totals off", image_base64=payload)
        with pytest.raises(ValidationError):
            await workbench.submit_error(draft)
        fake_ai.classify.assert_not_called()

    async def test_busy_while_analyzing(self, workbench, fake_ai, draft, analysis):
        """Test that a second submission is refused while one is in flight."""
        release = asyncio.Event()

        async def slow_classify(description, image_base64=None):
            await release.wait()
            return analysis

        fake_ai.classify.side_effect = slow_classify
        first = asyncio.create_task(workbench.submit_error(draft))
        await asyncio.sleep(0)
        assert workbench.is_analyzing

        with pytest.raises(WorkbenchBusyError):
            await workbench.submit_error(draft)

        release.set()
        await first
        assert not workbench.is_analyzing
        assert len(workbench.store) == 1

    async def test_analyzing_flag_reset_on_error(self, workbench, fake_ai, draft):
        """Test that an unexpected classifier failure clears the busy flag."""
        fake_ai.classify.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await workbench.submit_error(draft)
        assert not workbench.is_analyzing
        assert len(workbench.store) == 0


class TestSendChatMessage:
    """Test the chat workflow."""

    async def test_reply_appended_after_user_message(self, workbench, fake_ai, draft):
        """Test a successful exchange."""
        record = await workbench.submit_error(draft)

        reply = await workbench.send_chat_message(record.id, "Where do I start?")

        assert reply.role is ChatRole.MODEL
        assert reply.text == "Check the opening balance first."
        history = workbench.store.get(record.id).chat_history
        assert [(m.role, m.text) for m in history] == [
            (ChatRole.USER, "Where do I start?"),
            (ChatRole.MODEL, "Check the opening balance first."),
        ]
        fake_ai.chat.assert_awaited_once_with(
            "Title: Test A. Description: bank reconciliation off by 100",
            (),
            "Where do I start?",
        )

    async def test_prior_history_excludes_new_message(self, workbench, fake_ai, draft):
        """Test that the gateway receives the history before the new message."""
        record = await workbench.submit_error(draft)
        fake_ai.chat.side_effect = ["First answer", "Second answer"]

        await workbench.send_chat_message(record.id, "First question")
        await workbench.send_chat_message(record.id, "Second question")

        prior = fake_ai.chat.await_args_list[1].args[1]
        assert [m.text for m in prior] == ["First question", "First answer"]
        history = workbench.store.get(record.id).chat_history
        assert [m.text for m in history] == [
            "First question",
            "First answer",
            "Second question",
            "Second answer",
        ]

    async def test_failure_keeps_user_message_only(self, workbench, fake_ai, draft):
        """Test that a failed AI call leaves just the optimistic user message."""
        record = await workbench.submit_error(draft)
        fake_ai.chat.side_effect = TimeoutError("AI chat timed out after 60.0s")

        with pytest.raises(AIServiceError):
            await workbench.send_chat_message(record.id, "Hello?")

        history = workbench.store.get(record.id).chat_history
        assert [(m.role, m.text) for m in history] == [(ChatRole.USER, "Hello?")]
        assert workbench.pending_chats == frozenset()
        assert get_metrics().chat_failures.total() == 1

    async def test_security_error_wrapped(self, workbench, fake_ai, draft):
        """Test that a blocked request surfaces as AIServiceError."""
        record = await workbench.submit_error(draft)
        fake_ai.chat.side_effect = SecurityError("redaction failed")

        with pytest.raises(AIServiceError, match="blocked"):
            await workbench.send_chat_message(record.id, "Hello?")

    async def test_unexpected_error_wrapped(self, workbench, fake_ai, draft):
        """Test that a failure outside the AI error family is logged, counted and wrapped."""
        record = await workbench.submit_error(draft)
        fake_ai.chat.side_effect = RuntimeError("client exploded")

        with pytest.raises(AIServiceError, match="client exploded") as exc_info:
            await workbench.send_chat_message(record.id, "Hello?")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        history = workbench.store.get(record.id).chat_history
        assert [(m.role, m.text) for m in history] == [(ChatRole.USER, "Hello?")]
        assert get_metrics().chat_failures.total() == 1
        assert record.id not in workbench.pending_chats

    @pytest.mark.parametrize("blank", ["", "   \n"])
    async def test_blank_reply_replaced(self, workbench, fake_ai, draft, blank):
        """Test that an empty AI reply is stored as the busy placeholder."""
        record = await workbench.submit_error(draft)
        fake_ai.chat.return_value = blank

        reply = await workbench.send_chat_message(record.id, "Anything?")

        assert reply.text == CHAT_BUSY_MESSAGE
        assert workbench.store.get(record.id).chat_history[-1].text == CHAT_BUSY_MESSAGE

    async def test_blank_message_ignored(self, workbench, fake_ai, draft):
        """Test that a blank message changes nothing."""
        record = await workbench.submit_error(draft)
        assert await workbench.send_chat_message(record.id, "  ") is None
        fake_ai.chat.assert_not_called()
        assert workbench.store.get(record.id).chat_history == ()

    async def test_unknown_record(self, workbench):
        """Test chatting about a missing record."""
        with pytest.raises(RecordNotFoundError):
            await workbench.send_chat_message("42", "Hello")

    async def test_busy_while_reply_pending(self, workbench, fake_ai, draft):
        """Test that a second message waits for the first reply."""
        record = await workbench.submit_error(draft)
        release = asyncio.Event()

        async def slow_chat(context, prior, text):
            await release.wait()
            return "done"

        fake_ai.chat.side_effect = slow_chat
        first = asyncio.create_task(workbench.send_chat_message(record.id, "One"))
        await asyncio.sleep(0)
        assert record.id in workbench.pending_chats

        with pytest.raises(WorkbenchBusyError):
            await workbench.send_chat_message(record.id, "Two")

        release.set()
        await first
        texts = [m.text for m in workbench.store.get(record.id).chat_history]
        assert texts == ["One", "done"]

    async def test_late_reply_applies_to_its_own_record(self, workbench, fake_ai, draft):
        """Test that a reply lands on the record it was asked about."""
        first = await workbench.submit_error(draft)
        second = await workbench.submit_error(ErrorDraft(title="Other", description="VAT"))
        release = asyncio.Event()

        async def slow_chat(context, prior, text):
            await release.wait()
            return "reply for first"

        fake_ai.chat.side_effect = slow_chat
        task = asyncio.create_task(workbench.send_chat_message(first.id, "Question"))
        await asyncio.sleep(0)
        workbench.store.select(second.id)
        release.set()
        await task

        assert [m.text for m in workbench.store.get(first.id).chat_history] == [
            "Question",
            "reply for first",
        ]
        assert workbench.store.get(second.id).chat_history == ()


class TestSyncToERP:
    """Test the ERP sync workflow."""

    async def test_success(self, workbench, fake_erp, draft, notifications):
        """Test a successful push with both notifications."""
        record = await workbench.submit_error(draft)

        external_id = await workbench.sync_to_erp(record.id)

        assert external_id == "MS-DYN-42"
        assert workbench.store.get(record.id).external_sync_id == "MS-DYN-42"
        assert notifications == [
            "Connecting to Fake ERP to sync record 1...",
            "Record 1 pushed to Fake ERP as MS-DYN-42.",
        ]
        assert fake_erp.pushed == [record]
        assert get_metrics().erp_syncs.total() == 1

    async def test_failure_leaves_record_unchanged(
        self, workbench, fake_erp, draft, notifications
    ):
        """Test that a failed push reports the error and stores nothing."""
        record = await workbench.submit_error(draft)
        fake_erp.fail = True

        with pytest.raises(IntegrationError):
            await workbench.sync_to_erp(record.id)

        assert workbench.store.get(record.id).external_sync_id is None
        assert notifications[-1] == "Sync of record 1 to Fake ERP failed: Fake ERP rejected record 1"
        assert workbench.pending_syncs == frozenset()
        assert get_metrics().erp_sync_failures.total() == 1

    async def test_resync_replaces_identifier(self, workbench, fake_erp, draft):
        """Test that syncing again stores the newest identifier."""
        fake_erp.external_ids = ["MS-DYN-1", "MS-DYN-2"]
        record = await workbench.submit_error(draft)

        await workbench.sync_to_erp(record.id)
        await workbench.sync_to_erp(record.id)

        assert workbench.store.get(record.id).external_sync_id == "MS-DYN-2"

    async def test_status_change_during_sync_preserved(self, workbench, fake_erp, draft):
        """Test that edits made while a push is in flight survive it."""
        record = await workbench.submit_error(draft)
        fake_erp.hold = True

        task = asyncio.create_task(workbench.sync_to_erp(record.id))
        await fake_erp.started.wait()
        workbench.store.update_status(record.id, "Fixed")
        fake_erp.release.set()
        await task

        stored = workbench.store.get(record.id)
        assert stored.status is ErrorStatus.FIXED
        assert stored.external_sync_id == "MS-DYN-42"

    async def test_busy_while_syncing(self, workbench, fake_erp, draft):
        """Test that the same record cannot be pushed twice at once."""
        record = await workbench.submit_error(draft)
        fake_erp.hold = True

        task = asyncio.create_task(workbench.sync_to_erp(record.id))
        await fake_erp.started.wait()
        assert record.id in workbench.pending_syncs

        with pytest.raises(WorkbenchBusyError):
            await workbench.sync_to_erp(record.id)

        fake_erp.release.set()
        await task
        assert len(fake_erp.pushed) == 1

    async def test_unknown_record(self, workbench, fake_erp, notifications):
        """Test syncing a missing record."""
        with pytest.raises(RecordNotFoundError):
            await workbench.sync_to_erp("9")
        assert fake_erp.pushed == []
        assert notifications == []

    async def test_notify_optional(self, store, fake_ai, fake_erp, draft):
        """Test that a workbench without a notifier still syncs."""
        from accounfix.config.schema import WorkbenchConfig

        workbench = Workbench(store, fake_ai, fake_erp, WorkbenchConfig())
        record = await workbench.submit_error(draft)
        assert await workbench.sync_to_erp(record.id) == "MS-DYN-42"


class TestDashboardAndExport:
    """Test dashboard data and report export."""

    async def test_dashboard(self, workbench, draft):
        """Test stats and recent records."""
        for i in range(7):
            await workbench.submit_error(ErrorDraft(title=f"E{i}", description="d"))
        workbench.store.update_status("7", "Fixed")

        stats, recent = workbench.dashboard()

        assert stats.total == 7
        assert stats.fixed == 1
        assert stats.pending == 6
        assert [r.id for r in recent] == ["7", "6", "5", "4", "3"]

    async def test_export_default_path(self, workbench, draft, tmp_path):
        """Test export into the configured directory."""
        await workbench.submit_error(draft)

        path = workbench.export_report()

        assert path == tmp_path / "accounfix_report.csv"
        with path.open(encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == ["ID", "Title", "Category", "Priority", "Status", "Reporter", "CreatedDate"]
        assert rows[1] == ["1", "Test A", "Payment", "High", "Pending", "Admin Web", "2024-03-15"]

    async def test_export_explicit_path(self, workbench, tmp_path):
        """Test export of an empty store to a chosen file."""
        target = tmp_path / "out.csv"
        assert workbench.export_report(target) == target
        assert target.read_text(encoding="utf-8") == (
            "ID,Title,Category,Priority,Status,Reporter,CreatedDate\n"
        )
