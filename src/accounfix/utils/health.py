"""Start-up health checks.

This module provides health check capabilities for AccounFix:
- Check configuration consistency
- Check AI service credentials
- Check that the report export directory is writable
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from accounfix.utils.logging import LogEventNames
from accounfix.utils.security import mask_config_value

if TYPE_CHECKING:
    from accounfix.config.schema import AccountFixConfig

log = structlog.get_logger()


class HealthStatus(StrEnum):
    """Health check status values, best first."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Outcome of a full health check run.

    A DEGRADED session still counts as healthy: it can run, with some
    features unavailable.
    """

    status: HealthStatus
    timestamp: datetime
    checks: list[CheckResult]

    @property
    def healthy(self) -> bool:
        return self.status != HealthStatus.UNHEALTHY

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "healthy": self.healthy,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "checks": [
                {"name": c.name, "status": c.status.value, "message": c.message, **c.details}
                for c in self.checks
            ],
        }


def overall_status(checks: list[CheckResult]) -> HealthStatus:
    """The worst status among the checks; HEALTHY when there are none."""
    order = list(HealthStatus)
    return max((c.status for c in checks), key=order.index, default=HealthStatus.HEALTHY)


class HealthChecker:
    """Runs the start-up checks for a configuration.

    Example:
        checker = HealthChecker(config)
        report = await checker.run_all_checks()
        if not report.healthy:
            print(report.to_dict())
    """

    def __init__(self, config: AccountFixConfig) -> None:
        self._config = config

    async def run_all_checks(self) -> HealthReport:
        """Run every check concurrently and aggregate the results.

        A check that raises is reported as UNHEALTHY under its own name.
        """
        log.info(LogEventNames.HEALTH_CHECK_START)
        timestamp = datetime.now(UTC)

        named_checks = {
            "config": self._check_config(),
            "ai_credentials": self._check_ai_credentials(),
            "export_dir": self._check_export_dir(),
        }
        results = await asyncio.gather(*named_checks.values(), return_exceptions=True)

        checks: list[CheckResult] = []
        for name, result in zip(named_checks, results, strict=True):
            if isinstance(result, BaseException):
                checks.append(
                    CheckResult(
                        name=name,
                        status=HealthStatus.UNHEALTHY,
                        message=f"Check failed with exception: {result}",
                    )
                )
            else:
                checks.append(result)

        report = HealthReport(status=overall_status(checks), timestamp=timestamp, checks=checks)
        log.info(
            LogEventNames.HEALTH_CHECK_COMPLETE,
            healthy=report.healthy,
            status=report.status.value,
            checks_run=len(checks),
        )
        return report

    async def _check_config(self) -> CheckResult:
        """Check that the loaded settings are usable together."""
        ai = self._config.ai
        if ai.api_key.startswith("${"):
            return CheckResult(
                name="config",
                status=HealthStatus.UNHEALTHY,
                message="ai.api_key contains an unresolved ${...} reference",
            )

        return CheckResult(
            name="config",
            status=HealthStatus.HEALTHY,
            message="Configuration valid",
            details={
                "model": ai.model,
                "timeout": ai.timeout,
                "erp_delay_seconds": self._config.erp.delay_seconds,
                "seed_demo_records": self._config.workbench.seed_demo_records,
            },
        )

    async def _check_ai_credentials(self) -> CheckResult:
        """Check that an AI API key is configured.

        A missing key only degrades the session: classification falls back
        to manual review and chat replies fail, but records can still be
        created, updated, synced and exported.
        """
        if not self._config.ai.api_key:
            return CheckResult(
                name="ai_credentials",
                status=HealthStatus.DEGRADED,
                message="API_KEY not set, AI classification and chat will be unavailable",
            )

        return CheckResult(
            name="ai_credentials",
            status=HealthStatus.HEALTHY,
            message="Anthropic API key configured",
            details={
                "provider": "anthropic",
                "model": self._config.ai.model,
                "api_key": mask_config_value("api_key", self._config.ai.api_key),
            },
        )

    async def _check_export_dir(self) -> CheckResult:
        """Check that the CSV report can be written."""
        export_dir = self._config.workbench.export_dir
        if not export_dir.is_dir():
            return CheckResult(
                name="export_dir",
                status=HealthStatus.UNHEALTHY,
                message=f"Export directory does not exist: {export_dir}",
            )

        if not os.access(export_dir, os.W_OK):
            return CheckResult(
                name="export_dir",
                status=HealthStatus.UNHEALTHY,
                message=f"Export directory is not writable: {export_dir}",
            )

        return CheckResult(
            name="export_dir",
            status=HealthStatus.HEALTHY,
            message="Export directory writable",
            details={"path": str(export_dir.resolve())},
        )
