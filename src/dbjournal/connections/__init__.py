"""
Connection management for dbjournal.

Key components:
- DatabaseClient: Interface for executing statements against one database
- SchemaCatalog: Interface for table/column/primary-key lookups
- SqliteClient / SqliteCatalog: SQLite implementation
- MssqlClient / MssqlCatalog: MS SQL Server implementation (pyodbc, Azure AD),
  loaded by `dbjournal.connections.factory.create_client()`
"""
from .base import DatabaseClient, SchemaCatalog
from .constants import MSSQL_CONNECTION_DEFAULTS, SQLITE_CONNECTION_DEFAULTS
from .sqlite import SqliteCatalog, SqliteClient

__all__ = [
    "DatabaseClient",
    "SchemaCatalog",
    "SqliteClient",
    "SqliteCatalog",
    "MSSQL_CONNECTION_DEFAULTS",
    "SQLITE_CONNECTION_DEFAULTS",
]
