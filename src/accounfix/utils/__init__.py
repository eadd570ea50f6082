"""Utility functions and helpers.

This module provides various utilities for AccounFix:
- security: Secret redaction, image payload validation
- async_helpers: Exception hierarchy, retry and timeout helpers
- logging: Structured logging with secret sanitization
- health: Health check utilities
- metrics: Session metrics collection
"""

from accounfix.utils.async_helpers import (
    AccountFixError,
    AIServiceError,
    IntegrationError,
    RateLimitError,
    TimeoutError,
)
from accounfix.utils.health import (
    HealthChecker,
    HealthReport,
    HealthStatus,
)
from accounfix.utils.logging import (
    LogFormat,
    LogLevel,
    bind_context,
    clear_context,
    configure_logging,
    unbind_context,
)
from accounfix.utils.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    Timer,
    get_metrics,
)
from accounfix.utils.security import (
    RedactionError,
    SecretRedactor,
    SecurityError,
    ValidationError,
)

__all__ = [
    # Errors
    "AIServiceError",
    "AccountFixError",
    "IntegrationError",
    "RateLimitError",
    "TimeoutError",
    # Metrics
    "Counter",
    "Gauge",
    # Health
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    "Histogram",
    # Logging
    "LogFormat",
    "LogLevel",
    "MetricsRegistry",
    # Security
    "RedactionError",
    "SecretRedactor",
    "SecurityError",
    "Timer",
    "ValidationError",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_metrics",
    "unbind_context",
]
