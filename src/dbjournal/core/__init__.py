"""
Core components of dbjournal.

Only the shared models are imported here; the connection layer depends on
them, and the components below depend on the connection layer:

- codec: column values to SQL literals
- watermark: per-table journaling position
- scanner: created/updated candidate rows for one window
- encoder: candidate rows to journal entries
- journal: the append-only log file
- orchestrator: one run across every watermarked table
- service: the operations offered to the command line
- workspace: project discovery and configuration loading
"""
from .models import (
    ChangeSet,
    ChangeWindow,
    ColumnInfo,
    ColumnType,
    InitAction,
    InitResult,
    JournalEntry,
    OperationKind,
    TableRunResult,
    TableRunStatus,
    TableSchema,
    TableWatermark,
)

__all__ = [
    "ChangeSet",
    "ChangeWindow",
    "ColumnInfo",
    "ColumnType",
    "InitAction",
    "InitResult",
    "JournalEntry",
    "OperationKind",
    "TableRunResult",
    "TableRunStatus",
    "TableSchema",
    "TableWatermark",
]
