"""
Configuration models for dbjournal projects.
"""
from .settings import (
    RESERVED_IDENTIFIER_SEQUENCES,
    ColumnsConfig,
    ConnectionConfig,
    JournalConfig,
    OptionsConfig,
    ProjectConfig,
)

__all__ = [
    "RESERVED_IDENTIFIER_SEQUENCES",
    "ColumnsConfig",
    "ConnectionConfig",
    "JournalConfig",
    "OptionsConfig",
    "ProjectConfig",
]
