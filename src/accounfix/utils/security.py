"""Secret redaction and input checks.

Accountants paste whatever the ERP or a spreadsheet shows them into an
error description, so descriptions can carry API keys, Dynamics 365
client secrets or database connection strings. Text leaving the process
(to the AI service or to the logs) is redacted first. Redaction fails
closed: if it cannot run, the caller must not send the text.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import TYPE_CHECKING

import structlog

from .async_helpers import SecurityError

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger()


class RedactionError(SecurityError):
    """Secret redaction could not be performed."""


class ValidationError(SecurityError):
    """User supplied input was refused."""


# Decoded size limit for an attached receipt or screenshot
MAX_IMAGE_BYTES = 5 * 1024 * 1024

JPEG_SIGNATURE = b"\xff\xd8\xff"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_SENSITIVE_KEY_PARTS = ("key", "secret", "token", "password", "credential")


class SecretRedactor:
    """Replace credentials found in free text with a placeholder.

    Example:
        SecretRedactor().redact("client_secret=Abc~123.def-456_ghi789")
        # -> "[REDACTED]"
    """

    DEFAULT_PATTERNS: tuple[tuple[str, str], ...] = (
        (
            r"(?i)(api[_-]?key|secret|token|password|credential)\s*[=:]\s*[\"']?[\w-]{16,}",
            "Generic secret assignment",
        ),
        (r"sk-ant-[\w-]{40,}", "Anthropic API key"),
        # Dynamics 365 / Azure
        (r"(?i)client[_-]?secret\s*[=:]\s*[\"']?[\w~.-]{16,}", "Entra ID client secret"),
        (r"AccountKey=[a-zA-Z0-9+/=]{88}", "Azure storage account key"),
        (r"(?i)[?&]sig=[a-zA-Z0-9%+/=]{20,}", "Azure SAS signature"),
        (r"(?i)bearer\s+[\w.~+/-]{20,}=*", "Bearer token"),
        (r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*", "JWT"),
        (r"AKIA[0-9A-Z]{16}", "AWS access key ID"),
        # ERP and ledger databases
        (
            r"(?i)(postgres(?:ql)?|mysql|mssql|sqlserver|mongodb(?:\+srv)?|redis)://[^:]+:[^@]+@[^\s]+",
            "Database URL with password",
        ),
        (r"(?i)(?:^|;)\s*password\s*=\s*[^;\s]+", "ADO.NET connection string password"),
        (r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", "Private key header"),
    )

    def __init__(
        self,
        placeholder: str = "[REDACTED]",
        custom_patterns: Sequence[tuple[str, str]] | None = None,
    ) -> None:
        """
        Args:
            placeholder: Replacement text for every match
            custom_patterns: Extra (regex, description) pairs

        Raises:
            RedactionError: If a pattern does not compile
        """
        self.placeholder = placeholder
        self._patterns: list[tuple[str, re.Pattern[str]]] = []

        for pattern_str, name in (*self.DEFAULT_PATTERNS, *(custom_patterns or ())):
            try:
                self._patterns.append((name, re.compile(pattern_str)))
            except re.error as e:
                log.error("pattern_compilation_failed", pattern=name, error=str(e))
                raise RedactionError(f"Failed to compile secret pattern {name!r}: {e}") from e

    def redact(self, text: str) -> str:
        """Return text with every detected secret replaced.

        Raises:
            RedactionError: If any pattern fails while scanning
        """
        if not text:
            return text

        try:
            for _, pattern in self._patterns:
                text = pattern.sub(self.placeholder, text)
        except Exception as e:
            log.error("redaction_failed", error=type(e).__name__)
            raise RedactionError(f"Redaction failed: {e}") from e
        return text


def validate_image_payload(payload: str, max_bytes: int = MAX_IMAGE_BYTES) -> str:
    """Check that a base64 string decodes to a JPEG image.

    Args:
        payload: Base64 text, without a data-URL prefix.
        max_bytes: Largest decoded size accepted.

    Returns:
        The payload with surrounding whitespace removed.

    Raises:
        ValidationError: If the payload is not valid base64, too large,
            or not a JPEG.
    """
    cleaned = payload.strip()
    if not cleaned:
        raise ValidationError("Image payload is empty")

    try:
        raw = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Image payload is not valid base64: {e}") from e

    if len(raw) > max_bytes:
        raise ValidationError(f"Image is too large: {len(raw)} bytes (max {max_bytes})")

    if not raw.startswith(JPEG_SIGNATURE):
        raise ValidationError("Image payload is not a JPEG image")

    return cleaned


def sanitize_for_logging(text: str) -> str:
    """Strip ANSI colour codes and control characters, keeping newlines and tabs."""
    if not text:
        return text
    return _CONTROL_CHARS.sub("", _ANSI_ESCAPE.sub("", text))


def mask_config_value(key: str, value: str) -> str:
    """Mask a configuration value whose key names a credential.

    Long values keep their first and last four characters so an operator
    can tell which key is configured.
    """
    if not any(part in key.lower() for part in _SENSITIVE_KEY_PARTS):
        return value
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"
