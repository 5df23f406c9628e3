"""
Timestamp-driven change journal for relational databases.
"""
from .core.configs import ProjectConfig
from .core.journal import JournalLog
from .core.models import JournalEntry, TableRunResult, TableRunStatus
from .core.orchestrator import JournalOrchestrator
from .core.service import DbJournal
from .core.workspace import Workspace

__version__ = "0.1.0"

__all__ = [
    "DbJournal",
    "JournalEntry",
    "JournalLog",
    "JournalOrchestrator",
    "ProjectConfig",
    "TableRunResult",
    "TableRunStatus",
    "Workspace",
]
