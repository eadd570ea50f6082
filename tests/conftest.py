"""Shared test fixtures for AccounFix."""

import asyncio
from collections.abc import Iterator
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from accounfix.config.schema import AnthropicConfig, RetryConfig, WorkbenchConfig
from accounfix.core.store import ErrorStore
from accounfix.core.workbench import Workbench
from accounfix.models.analysis import AnalysisResult
from accounfix.models.error import ErrorCategory, ErrorDraft, ErrorPriority, ErrorRecord
from accounfix.utils.async_helpers import IntegrationError
from accounfix.utils.metrics import MetricsRegistry

FIXED_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)

# Smallest byte sequence that passes the JPEG signature check, base64 encoded
JPEG_BASE64 = "/9j/4AAQSkZJRgABAQAAAQABAAD/2w=="


class FakeERPAdapter:
    """ERP adapter with controllable latency and failure injection."""

    def __init__(
        self,
        delay: float = 0.0,
        fail: bool = False,
        external_ids: list[str] | None = None,
    ) -> None:
        self.delay = delay
        self.fail = fail
        self.external_ids = list(external_ids or ["MS-DYN-42"])
        self.pushed: list[ErrorRecord] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.hold = False

    @property
    def system_name(self) -> str:
        return "Fake ERP"

    async def push(self, record: ErrorRecord) -> str:
        self.pushed.append(record)
        self.started.set()
        if self.hold:
            await self.release.wait()
        await asyncio.sleep(self.delay)
        if self.fail:
            raise IntegrationError(f"Fake ERP rejected record {record.id}")
        return self.external_ids[(len(self.pushed) - 1) % len(self.external_ids)]


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Give every test a fresh metrics registry."""
    MetricsRegistry.reset_instance()
    yield
    MetricsRegistry.reset_instance()


@pytest.fixture
def now() -> datetime:
    """The fixed clock reading used by the store fixture."""
    return FIXED_NOW


@pytest.fixture
def jpeg_base64() -> str:
    """A tiny base64 payload that passes the JPEG checks."""
    return JPEG_BASE64


@pytest.fixture
def anthropic_config() -> AnthropicConfig:
    """Create a test Anthropic configuration."""
    return AnthropicConfig(
        api_key="sk-ant-test-key-123",
        model="claude-3-5-sonnet-20241022",
        max_tokens=1024,
        temperature=0.3,
        timeout=5.0,
    )


@pytest.fixture
def single_attempt() -> RetryConfig:
    """Retry settings that never retry, so failures surface immediately."""
    return RetryConfig(max_attempts=1, initial_delay=0.1, max_delay=1.0)


@pytest.fixture
def draft() -> ErrorDraft:
    """A valid creation draft."""
    return ErrorDraft(title="Test A", description="bank reconciliation off by 100")


@pytest.fixture
def analysis() -> AnalysisResult:
    """A successful classification result."""
    return AnalysisResult(
        category=ErrorCategory.PAYMENT,
        priority=ErrorPriority.HIGH,
        suggestion="Match the statement lines with XLOOKUP on the reference column.",
        potential_impact="Cash balance misstated.",
    )


@pytest.fixture
def store() -> ErrorStore:
    """An empty store with a fixed clock."""
    return ErrorStore(clock=lambda: FIXED_NOW)


@pytest.fixture
def fake_ai(analysis: AnalysisResult) -> AsyncMock:
    """AI gateway double returning a successful classification and reply."""
    ai = AsyncMock()
    ai.classify.return_value = analysis
    ai.chat.return_value = "Check the opening balance first."
    ai.model_name = "fake-model"
    return ai


@pytest.fixture
def fake_erp() -> FakeERPAdapter:
    """ERP adapter double that succeeds immediately."""
    return FakeERPAdapter()


@pytest.fixture
def notifications() -> list[str]:
    """Collects workbench notifications."""
    return []


@pytest.fixture
def workbench(
    store: ErrorStore,
    fake_ai: AsyncMock,
    fake_erp: FakeERPAdapter,
    notifications: list[str],
    tmp_path,
) -> Workbench:
    """Workbench over an empty store, exporting into tmp_path."""
    config = WorkbenchConfig(export_dir=tmp_path)
    return Workbench(store, fake_ai, fake_erp, config, notify=notifications.append)
