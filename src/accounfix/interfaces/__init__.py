"""Protocol definitions for pluggable adapters."""

from .ai import AIGateway
from .erp import ERPSyncAdapter

__all__ = ["AIGateway", "ERPSyncAdapter"]
