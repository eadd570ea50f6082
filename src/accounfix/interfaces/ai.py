"""Abstract interface for the AI service."""

from collections.abc import Sequence
from typing import Protocol

from ..models.analysis import AnalysisResult
from ..models.error import ChatMessage


class AIGateway(Protocol):
    """Abstract interface for the generative AI service.

    Classification never raises and answers failures with the fixed
    fallback analysis. Chat failures are raised to the caller.
    """

    async def classify(
        self,
        description: str,
        image_base64: str | None = None,
    ) -> AnalysisResult:
        """
        Classify an error description and suggest a remediation.

        Args:
            description: Free-text description of the discrepancy
            image_base64: Optional base64 JPEG attached as extra input

        Returns:
            Analysis with category and priority drawn from the known
            enumerations. On any failure the fallback analysis is
            returned instead; this method never raises.
        """
        ...

    async def chat(
        self,
        error_context: str,
        prior_history: Sequence[ChatMessage],
        new_message: str,
    ) -> str:
        """
        Continue the conversation about a single error.

        Args:
            error_context: Title and description of the error
            prior_history: Earlier turns, oldest first, excluding new_message
            new_message: The user's newest message

        Returns:
            The model's reply text, possibly empty

        Raises:
            AIServiceError: If the request fails
            RateLimitError: If rate limit exceeded
            TimeoutError: If request times out
        """
        ...

    @property
    def model_name(self) -> str:
        """
        Return the model identifier being used.

        Examples:
            - "claude-3-5-sonnet-20241022"
        """
        ...
