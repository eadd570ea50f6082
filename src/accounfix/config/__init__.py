"""Configuration loading and validation."""

from .loader import load_config
from .schema import (
    AccountFixConfig,
    AnthropicConfig,
    ERPSyncConfig,
    FileLoggingConfig,
    LoggingConfig,
    RetryConfig,
    WorkbenchConfig,
)

__all__ = [
    # Loader
    "load_config",
    # Root config
    "AccountFixConfig",
    # Section configs
    "AnthropicConfig",
    "ERPSyncConfig",
    "WorkbenchConfig",
    "LoggingConfig",
    "FileLoggingConfig",
    "RetryConfig",
]
