"""
Message utilities for dbjournal.

- Logger: Human-readable output formatting with colors
- Summary: Per-run table summary
- ErrorFormatter: Friendly error messages for the command line
"""
from dbjournal.messages.logger import JournalLogger, get_logger, set_global_level

__all__ = ["JournalLogger", "get_logger", "set_global_level"]
