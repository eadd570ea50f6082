"""Simulated Microsoft Dynamics 365 integration.

No network traffic: the adapter waits for a fixed delay and hands back a
synthetic identifier, optionally failing at a configured rate so the
error path can be exercised end to end.
"""

from __future__ import annotations

import asyncio
import random

import structlog

from ...config.schema import ERPSyncConfig
from ...models.error import ErrorRecord
from ...utils.async_helpers import IntegrationError

log = structlog.get_logger()

MAX_SYNTHETIC_ID = 9999


class SimulatedDynamicsAdapter:
    """ERP sync adapter implementing the ERPSyncAdapter protocol.

    Example:
        adapter = SimulatedDynamicsAdapter(ERPSyncConfig(delay_seconds=0))
        external_id = await adapter.push(record)  # "MS-DYN-4821"
    """

    def __init__(self, config: ERPSyncConfig, rng: random.Random | None = None) -> None:
        """Initialize the adapter.

        Args:
            config: ERP sync configuration.
            rng: Random source for ids and failure injection. Seed it for
                reproducible runs.
        """
        self._config = config
        self._rng = rng or random.Random()

    @property
    def system_name(self) -> str:
        return "Microsoft Dynamics 365"

    async def push(self, record: ErrorRecord) -> str:
        """Pretend to register the record with Dynamics 365.

        Raises:
            IntegrationError: When failure injection triggers.
        """
        log.debug(
            "erp_push_simulated",
            record_id=record.id,
            delay_seconds=self._config.delay_seconds,
            resync=record.is_synced,
        )
        await asyncio.sleep(self._config.delay_seconds)

        if self._config.failure_rate and self._rng.random() < self._config.failure_rate:
            raise IntegrationError(f"{self.system_name} rejected record {record.id}")

        return f"{self._config.id_prefix}{self._rng.randint(0, MAX_SYNTHETIC_ID)}"
