"""
Custom exceptions for dbjournal - clear, actionable error handling.

dbjournal uses a hierarchical exception system so the command line and the
orchestrator can tell apart what the operator must fix, what the data looks
like, and what should never happen at all.

Exception Hierarchy:
    DbJournalError (base)
    ├── ConfigError - Configuration errors, raised before any mutation
    │   ├── UnsupportedColumnTypeError - Binary/LOB column in a journaled table
    │   ├── IllegalIdentifierError - Identifier contains a reserved separator
    │   └── WatermarkTableMissingError - `setup` has not been run
    ├── JournalUserError - User/data errors scoped to one unit of work
    │   ├── MissingPrimaryKeyError - Journaled table cannot be keyed
    │   ├── JournalFormatError - Malformed line in the journal log
    │   ├── WindowError - Requested time is before the table's watermark
    │   ├── WatermarkExistsError - Table already has a watermark
    │   └── TableNotFoundError - Journaled table no longer exists
    ├── JournalRuntimeError - Broken invariants (scanner/encoder contract)
    │   ├── DuplicateInsertError - Same key inserted twice in one run
    │   ├── RowOutsideWindowError - Candidate row outside its window
    │   └── WatermarkConflictError - Watermark moved under a running table
    └── InfrastructureError - Database and filesystem failures
        ├── DatabaseError
        │   └── DatabaseConnectionError - Transient, retried
        └── JournalWriteError - Appending to the journal log failed

Usage Guidelines:
    - Always use exception chaining (`raise SpecificError(...) from e`) when
      wrapping exceptions to preserve the original traceback.
    - Pass identifying context as keyword arguments
      (`MissingPrimaryKeyError(msg, table="orders")`); it ends up in
      `error.context`.
    - Connection errors are transient and retried; everything else fails fast.
"""


class DbJournalError(Exception):
    """Base exception for all dbjournal errors."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message)
        self.context = kwargs


class ConfigError(DbJournalError):
    """Raised when there's an error in configuration."""

    pass


class UnsupportedColumnTypeError(ConfigError):
    """Column type cannot be rendered as a SQL literal."""

    pass


class IllegalIdentifierError(ConfigError):
    """Identifier contains a character reserved by the journal format."""

    pass


class WatermarkTableMissingError(ConfigError):
    """The watermark table does not exist."""

    pass


class JournalUserError(DbJournalError):
    """Base exception for user and data errors."""

    pass


class MissingPrimaryKeyError(JournalUserError):
    """A table with a journaled update column has no primary key."""

    pass


class JournalFormatError(JournalUserError):
    """A journal log line could not be parsed."""

    def __init__(self, message: str, line_number: int, line: str, **kwargs):
        super().__init__(message, line_number=line_number, line=line, **kwargs)
        self.line_number = line_number
        self.line = line


class WindowError(JournalUserError):
    """The requested window would move a watermark backwards."""

    pass


class WatermarkExistsError(JournalUserError):
    """A watermark already exists for the table."""

    pass


class TableNotFoundError(JournalUserError):
    """A watermarked table is missing from the database."""

    pass


class JournalRuntimeError(DbJournalError):
    """Base exception for broken internal invariants."""

    pass


class DuplicateInsertError(JournalRuntimeError):
    """The same primary key produced two INSERTs in one run."""

    pass


class RowOutsideWindowError(JournalRuntimeError):
    """A candidate row's driving timestamp is outside the scanned window."""

    pass


class WatermarkConflictError(JournalRuntimeError):
    """The watermark changed between reading it and committing it."""

    pass


class InfrastructureError(DbJournalError):
    """Base exception for database and filesystem failures."""

    pass


class DatabaseError(InfrastructureError):
    """A database statement failed."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Transient connection error talking to the database."""

    pass


class JournalWriteError(InfrastructureError):
    """Error appending to the journal log."""

    pass
