"""
Typed structures shared by the journal components.

Table metadata, watermarks, windows and journal entries are pydantic models
so that every boundary (catalog -> encoder, encoder -> log, store ->
orchestrator) validates what crosses it.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

import polars as pl
from pydantic import BaseModel, ConfigDict, Field, model_validator


class OperationKind(str, Enum):
    """Which query produced a candidate row."""

    INSERT = "insert"
    UPDATE = "update"


class ColumnType(str, Enum):
    """Normalized column types, independent of the database dialect."""

    INTEGER = "integer"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"
    FLOAT = "float"
    TEXT = "text"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    BINARY = "binary"

    @property
    def requires_quotes(self) -> bool:
        return self not in (ColumnType.INTEGER, ColumnType.BOOLEAN)

    @property
    def is_binary(self) -> bool:
        return self is ColumnType.BINARY


class ColumnInfo(BaseModel):
    """One column as reported by the schema catalog."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: ColumnType
    declared_type: str = ""
    is_primary_key: bool = False


class TableSchema(BaseModel):
    """A table's columns in catalog order plus its ordered primary key."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: Tuple[ColumnInfo, ...]
    primary_keys: Tuple[str, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def has_column(self, name: str) -> bool:
        return any(column.name == name for column in self.columns)

    def column(self, name: str) -> ColumnInfo:
        for column in self.columns:
            if column.name == name:
                return column
        raise KeyError(f"Column '{name}' not found in table '{self.name}'")


class TableWatermark(BaseModel):
    """Persistent journaling position of one table."""

    table_name: str
    last_journal: datetime
    execution_time: Optional[float] = Field(
        default=None, description="Duration of the last run in milliseconds"
    )


class ChangeWindow(BaseModel):
    """The `(lower, upper]` time range scanned for one table in one run."""

    model_config = ConfigDict(frozen=True)

    lower: datetime
    upper: datetime

    @model_validator(mode="after")
    def validate_bounds(self):
        if not self.lower < self.upper:
            raise ValueError(
                f"Window lower bound {self.lower} must be before upper bound "
                f"{self.upper}"
            )
        return self

    def contains(self, value: datetime) -> bool:
        return self.lower < value <= self.upper


class JournalEntry(BaseModel):
    """One reconstructed statement plus the metadata used to filter it."""

    model_config = ConfigDict(frozen=True)

    operation_timestamp: str
    table: str
    timestamp_column: str
    primary_key_columns: Tuple[str, ...] = ()
    primary_key_values: Tuple[str, ...] = ()
    statement: str


class ChangeSet(BaseModel):
    """Candidate rows for one table and window, split by operation kind."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    table: str
    window: ChangeWindow
    inserts: pl.DataFrame
    updates: pl.DataFrame


class TableRunStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class TableRunResult(BaseModel):
    """Outcome of journaling one table in one run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    table: str
    status: TableRunStatus
    lower: Optional[datetime] = None
    upper: Optional[datetime] = None
    inserts: int = 0
    updates: int = 0
    suppressed: int = 0
    entries: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None
    exception: Optional[BaseException] = Field(default=None, exclude=True)


class InitAction(str, Enum):
    CREATED = "created"
    RESET = "reset"
    SKIPPED = "skipped"


class InitResult(BaseModel):
    """What `init` did for one journal-eligible table."""

    table: str
    action: InitAction
    start: datetime
