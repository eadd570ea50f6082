"""Data models for AI classification results."""

from dataclasses import dataclass

from .error import ErrorCategory, ErrorPriority

FALLBACK_SUGGESTION = "Automatic analysis unavailable, review manually."
FALLBACK_IMPACT = "Needs manual review."


@dataclass(frozen=True)
class AnalysisResult:
    """Category, priority and remediation advice for a new error."""

    category: ErrorCategory
    priority: ErrorPriority
    suggestion: str
    potential_impact: str
    is_fallback: bool = False  # True when the values did not come from the AI

    @classmethod
    def fallback(cls) -> "AnalysisResult":
        """Fixed result used whenever classification cannot be completed."""
        return cls(
            category=ErrorCategory.OTHER,
            priority=ErrorPriority.MEDIUM,
            suggestion=FALLBACK_SUGGESTION,
            potential_impact=FALLBACK_IMPACT,
            is_fallback=True,
        )
