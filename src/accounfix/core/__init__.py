"""Core business logic components.

This module exports the main business logic classes:
- ErrorStore: In-memory record store with stats and filtering
- Workbench: Creation, chat and ERP sync workflows over the store
- render_csv / write_csv: CSV summary report
"""

from accounfix.core.report import render_csv, write_csv
from accounfix.core.store import (
    DuplicateRecordError,
    ErrorStore,
    InvalidStatusError,
    StoreError,
)
from accounfix.core.workbench import (
    CHAT_BUSY_MESSAGE,
    RecordNotFoundError,
    Workbench,
    WorkbenchBusyError,
    WorkbenchError,
)

__all__ = [
    "CHAT_BUSY_MESSAGE",
    "DuplicateRecordError",
    "ErrorStore",
    "InvalidStatusError",
    "RecordNotFoundError",
    "StoreError",
    "Workbench",
    "WorkbenchBusyError",
    "WorkbenchError",
    "render_csv",
    "write_csv",
]
