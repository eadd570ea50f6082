"""Data models and transfer objects."""

from .analysis import FALLBACK_IMPACT, FALLBACK_SUGGESTION, AnalysisResult
from .error import (
    ChatMessage,
    ChatRole,
    DraftValidationError,
    ErrorCategory,
    ErrorDraft,
    ErrorPriority,
    ErrorRecord,
    ErrorStatus,
)
from .stats import DashboardStats

__all__ = [
    # Error models
    "ErrorCategory",
    "ErrorPriority",
    "ErrorStatus",
    "ErrorDraft",
    "ErrorRecord",
    "DraftValidationError",
    # Chat models
    "ChatRole",
    "ChatMessage",
    # Analysis models
    "AnalysisResult",
    "FALLBACK_SUGGESTION",
    "FALLBACK_IMPACT",
    # Stats models
    "DashboardStats",
]
