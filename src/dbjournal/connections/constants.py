"""
Shared constants and default configurations for database connections.
"""

from pydantic import BaseModel, Field


class MssqlConnectionDefaults(BaseModel):
    """Default MSSQL connection configuration."""

    driver: str = Field(
        default="ODBC Driver 18 for SQL Server",
        description="ODBC driver name for SQL Server connections",
    )
    encrypt: str = Field(
        default="Yes", description="Enable encryption for SQL Server connections"
    )
    trust_cert: str = Field(
        default="Yes", description="Trust server certificate for SQL Server connections"
    )
    timeout: int = Field(default=30, ge=1, description="Connection timeout in seconds")


class SqliteConnectionDefaults(BaseModel):
    """Default SQLite connection configuration."""

    timeout: int = Field(
        default=30, ge=1, description="Seconds to wait for a locked database"
    )


MSSQL_CONNECTION_DEFAULTS = MssqlConnectionDefaults()
SQLITE_CONNECTION_DEFAULTS = SqliteConnectionDefaults()

# Connection types the client factory knows how to build
SUPPORTED_CONNECTION_TYPES = ("sqlite", "mssql")
