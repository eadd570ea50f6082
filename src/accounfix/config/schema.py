"""Pydantic models for configuration schema."""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnthropicConfig(BaseModel):
    """Anthropic-specific configuration."""

    api_key: str = Field(default_factory=lambda: os.environ.get("API_KEY", ""))
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = Field(2048, ge=1, le=8192)
    temperature: float = Field(0.3, ge=0.0, le=1.0)
    timeout: float = Field(60.0, gt=0, le=600, description="Per-call bound in seconds")


class ERPSyncConfig(BaseModel):
    """Simulated ERP integration configuration."""

    delay_seconds: float = Field(1.2, ge=0.0, le=60.0)
    id_prefix: str = "MS-DYN-"
    failure_rate: float = Field(0.0, ge=0.0, le=1.0)

    @field_validator("id_prefix")
    @classmethod
    def validate_id_prefix(cls, v: str) -> str:
        """External ids must stay on one line and be non-blank."""
        if not v.strip() or any(ch in v for ch in "\r\n,"):
            raise ValueError("id_prefix must be non-blank and free of commas and newlines")
        return v


class WorkbenchConfig(BaseModel):
    """Session behaviour configuration."""

    reporter: str = "Admin Web"
    export_dir: Path = Path(".")
    export_filename: str = "accounfix_report.csv"
    recent_limit: int = Field(5, ge=1, le=50)
    seed_demo_records: bool = True

    @field_validator("export_filename")
    @classmethod
    def validate_export_filename(cls, v: str) -> str:
        """Export file name must be a bare CSV file name."""
        if "/" in v or "\\" in v or not v.lower().endswith(".csv"):
            raise ValueError(f"Invalid export file name: {v}. Expected: name.csv")
        return v


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("accounfix.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["json", "console"] = "console"
    file: FileLoggingConfig = FileLoggingConfig()


class RetryConfig(BaseModel):
    """Retry configuration for transient failures."""

    max_attempts: int = Field(3, ge=1, le=10)
    initial_delay: float = Field(1.0, ge=0.1, le=10.0)
    max_delay: float = Field(30.0, ge=1.0, le=300.0)


class AccountFixConfig(BaseSettings):
    """Root configuration for AccounFix."""

    ai: AnthropicConfig = Field(default_factory=AnthropicConfig)
    erp: ERPSyncConfig = ERPSyncConfig()
    workbench: WorkbenchConfig = WorkbenchConfig()
    logging: LoggingConfig = LoggingConfig()
    retry: RetryConfig = RetryConfig()

    model_config = SettingsConfigDict(
        env_prefix="ACCOUNFIX_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )
