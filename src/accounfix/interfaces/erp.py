"""Abstract interface for ERP integrations."""

from typing import Protocol

from ..models.error import ErrorRecord


class ERPSyncAdapter(Protocol):
    """One-way push of error records into an enterprise system."""

    async def push(self, record: ErrorRecord) -> str:
        """
        Register the record with the ERP.

        Pushing an already synced record updates it on the ERP side
        and may return a new identifier.

        Args:
            record: Record to push

        Returns:
            Identifier the ERP assigned to the record

        Raises:
            IntegrationError: If the ERP rejects or cannot receive the record
        """
        ...

    @property
    def system_name(self) -> str:
        """Human readable name of the target system, e.g. "Microsoft Dynamics 365"."""
        ...
