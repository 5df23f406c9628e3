"""
Error formatting for dbjournal - friendly, helpful error messages.

ErrorFormatter turns exceptions into a short message plus a suggestion of
what to do next, keyed on which branch of the exception hierarchy they
belong to.
"""
import traceback
from typing import Optional, Tuple

from dbjournal.utility.exceptions import (
    ConfigError,
    DatabaseConnectionError,
    InfrastructureError,
    JournalFormatError,
    JournalRuntimeError,
    JournalUserError,
    WatermarkTableMissingError,
)


class ErrorFormatter:
    """Formats errors into friendly, helpful messages."""

    @staticmethod
    def format_error(error: Exception) -> Tuple[str, Optional[str]]:
        """
        Format an error into a friendly message and optional suggestion.

        Args:
            error: The exception to format

        Returns:
            Tuple of (friendly_message, suggestion)
        """
        message = str(error) or type(error).__name__

        if isinstance(error, WatermarkTableMissingError):
            return (message, "Run 'dbjournal setup' and 'dbjournal init' first.")

        if isinstance(error, ConfigError):
            return (
                f"Configuration error: {message}",
                "Check dbjournal.yml (or your DB_* environment variables). "
                "Use 'dbjournal debug' to validate.",
            )

        if isinstance(error, JournalFormatError):
            return (
                message,
                "The journal log is written by dbjournal only; restore it from "
                "a backup or archive it with 'dbjournal clean'.",
            )

        if isinstance(error, JournalUserError):
            return (message, None)

        if isinstance(error, JournalRuntimeError):
            return (
                f"Internal invariant violated: {message}",
                "This should never happen. Please report it with the log file "
                "from logs/dbjournal.log.",
            )

        if isinstance(error, DatabaseConnectionError):
            return (
                "Couldn't connect to the database.",
                "Check your connection settings, network connectivity, and "
                "credentials. Use 'dbjournal debug' to test the connection.",
            )

        if isinstance(error, InfrastructureError):
            return (message, "Check database and filesystem availability.")

        return (
            message,
            "Run with --verbose (or APP_DEBUG=1) for technical details.",
        )

    @staticmethod
    def format_with_stack_trace(error: Exception) -> str:
        """
        Format error with full stack trace for verbose mode.

        Args:
            error: The exception to format

        Returns:
            Formatted error with stack trace
        """
        tb_lines = traceback.format_exception(type(error), error, error.__traceback__)

        lines = [
            f"Error Type: {type(error).__name__}",
            f"Error Message: {error}",
        ]
        context = getattr(error, "context", None)
        if context:
            lines.append(
                "Context: " + ", ".join(f"{k}={v!r}" for k, v in context.items())
            )
        lines.extend(["", "Full Traceback:", "─" * 60])
        lines.extend(tb_lines)
        lines.append("─" * 60)

        return "\n".join(lines)
