"""Data models for tracked accounting errors."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Self


class _LabelledEnum(StrEnum):
    """String enum whose values double as display labels."""

    @classmethod
    def parse(cls, value: str) -> Self:
        """Look up a member by name or label, ignoring case.

        Raises:
            ValueError: If the value matches no member.
        """
        needle = value.strip().casefold()
        for member in cls:
            if needle in (member.name.casefold(), member.value.casefold()):
                return member
        raise ValueError(f"{value!r} is not a valid {cls.__name__}")

    @classmethod
    def coerce(cls, value: object, default: Self) -> Self:
        """Like parse(), but returns default for anything unrecognised."""
        if not isinstance(value, str):
            return default
        try:
            return cls.parse(value)
        except ValueError:
            return default


class ErrorCategory(_LabelledEnum):
    """Bookkeeping area an error belongs to."""

    INVOICE = "Invoice"
    PAYMENT = "Payment"
    TAX = "Tax"
    LEDGER = "Ledger"
    SYSTEM = "System"
    OTHER = "Other"


class ErrorPriority(_LabelledEnum):
    """Urgency of an error."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class ErrorStatus(_LabelledEnum):
    """Review state of an error."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    FIXED = "Fixed"
    REJECTED = "Rejected"


class ChatRole(StrEnum):
    """Author of a chat message."""

    USER = "user"
    MODEL = "model"


class DraftValidationError(ValueError):
    """Creation input is missing a required field."""


@dataclass(frozen=True)
class ChatMessage:
    """One turn in the conversation attached to an error."""

    role: ChatRole
    text: str


@dataclass(frozen=True)
class ErrorDraft:
    """Input collected by the creation form."""

    title: str
    description: str
    amount: float | None = None
    voucher_no: str | None = None
    image_base64: str | None = None  # JPEG payload, already base64 encoded
    reporter: str | None = None

    def validate(self) -> None:
        """Reject drafts without a title or description.

        Raises:
            DraftValidationError: If a required field is blank.
        """
        missing = [name for name in ("title", "description") if not getattr(self, name).strip()]
        if missing:
            raise DraftValidationError(f"Required field(s) missing: {', '.join(missing)}")


@dataclass(frozen=True)
class ErrorRecord:
    """A tracked accounting discrepancy."""

    id: str
    title: str
    description: str
    category: ErrorCategory
    priority: ErrorPriority
    status: ErrorStatus
    created_at: datetime
    reporter: str
    amount: float | None = None
    voucher_no: str | None = None
    image_base64: str | None = None
    ai_suggestion: str | None = None
    external_sync_id: str | None = None  # None until pushed to the ERP
    chat_history: tuple[ChatMessage, ...] = ()

    @property
    def is_synced(self) -> bool:
        """True once the record has been pushed to the ERP."""
        return self.external_sync_id is not None

    @property
    def chat_context(self) -> str:
        """Summary handed to the AI assistant as conversation context."""
        return f"Title: {self.title}. Description: {self.description}"

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on title or description."""
        needle = query.casefold()
        return needle in self.title.casefold() or needle in self.description.casefold()
