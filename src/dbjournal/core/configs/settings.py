"""
Configuration models for a dbjournal project.

These models validate `dbjournal.yml` (or the equivalent built from DB_*
environment variables) before anything touches the database.
"""
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from dbjournal.connections.constants import (
    MSSQL_CONNECTION_DEFAULTS,
    SQLITE_CONNECTION_DEFAULTS,
)

# Characters the journal log format reserves in headers
RESERVED_IDENTIFIER_SEQUENCES = ("|", "^", "*/", "\n", "\r")


class ConnectionConfig(BaseModel):
    """Database connection settings."""

    type: Literal["sqlite", "mssql"] = Field(
        default="sqlite", description="Database driver"
    )
    path: Optional[str] = Field(default=None, description="SQLite database file")
    server: Optional[str] = Field(default=None, description="SQL Server host")
    database: Optional[str] = Field(default=None, description="Database name")
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    driver: str = Field(default=MSSQL_CONNECTION_DEFAULTS.driver)
    authentication: Literal["sql", "azure_ad"] = Field(default="sql")
    encrypt: str = Field(default=MSSQL_CONNECTION_DEFAULTS.encrypt)
    trust_cert: str = Field(default=MSSQL_CONNECTION_DEFAULTS.trust_cert)
    timeout: int = Field(default=SQLITE_CONNECTION_DEFAULTS.timeout, ge=1)

    @model_validator(mode="after")
    def validate_required_fields(self):
        if self.type == "sqlite" and not self.path:
            raise ValueError("SQLite connections require 'path'")
        if self.type == "mssql":
            missing = [f for f in ("server", "database") if not getattr(self, f)]
            if missing:
                raise ValueError(
                    f"MSSQL connections require: {', '.join(missing)}"
                )
            if self.authentication == "sql" and not self.username:
                raise ValueError("SQL authentication requires 'username'")
        return self


class JournalConfig(BaseModel):
    """Where the journal log and the watermark table live."""

    path: str = Field(
        default="db_journal/journal.log", description="Journal log file"
    )
    table: str = Field(default="db_journal", description="Watermark table name")

    @field_validator("path", "table")
    @classmethod
    def validate_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    def resolve_path(self, root: Optional[Path] = None) -> Path:
        """Resolve the log path relative to the project root."""
        path = Path(self.path)
        if not path.is_absolute() and root is not None:
            path = root / path
        return path


class ColumnsConfig(BaseModel):
    """Names of the timestamp columns that drive journaling."""

    created_at: str = Field(default="created_at")
    updated_at: str = Field(default="updated_at")

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_column_name(cls, v):
        if not v or not v.strip():
            raise ValueError("column name must not be empty")
        for sequence in RESERVED_IDENTIFIER_SEQUENCES:
            if sequence in v:
                raise ValueError(f"column name must not contain {sequence!r}")
        return v.strip()


class OptionsConfig(BaseModel):
    """Run options."""

    concurrency: int = Field(
        default=1, ge=1, le=32, description="Tables journaled at the same time"
    )
    debug: bool = Field(default=False, description="Verbose errors and logging")


class ProjectConfig(BaseModel):
    """Complete dbjournal project configuration."""

    name: str = Field(default="dbjournal")
    connection: ConnectionConfig
    journal: JournalConfig = Field(default_factory=JournalConfig)
    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    options: OptionsConfig = Field(default_factory=OptionsConfig)
