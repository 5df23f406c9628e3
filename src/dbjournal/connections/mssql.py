"""
MS SQL Server client and schema catalog.

Supports SQL authentication and Azure AD authentication:
- All blocking driver calls wrapped in asyncio.to_thread()
- Instance-based Azure AD token caching with a 5-minute expiry buffer
- SQLSTATE 08xxx mapped to retryable connection errors
"""
import asyncio
import struct
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import pyodbc
from azure.core.credentials import AccessToken
from azure.identity import DefaultAzureCredential

from dbjournal.core.models import ColumnInfo, TableSchema
from dbjournal.messages import get_logger
from dbjournal.utility.exceptions import DatabaseConnectionError, DatabaseError
from dbjournal.utility.retry import with_retry
from dbjournal.utility.timestamps import parse_timestamp

from .base import DatabaseClient, SchemaCatalog
from .constants import MSSQL_CONNECTION_DEFAULTS
from .types import column_type_from_declared


class MssqlClient(DatabaseClient):
    """
    MS SQL Server client.

    Authentication:
    - "sql": username/password in the connection string
    - "azure_ad": token from DefaultAzureCredential (Managed Identity,
      Azure CLI, environment credentials, ...)

    Example:
        ```python
        client = MssqlClient(
            server="myserver.database.windows.net",
            database="mydatabase",
            options={"authentication": "azure_ad"},
        )
        await client.connect()
        ```
    """

    dialect = "mssql"

    # SQL Server constant for access token
    SQL_COPT_SS_ACCESS_TOKEN = 1256

    # Token refresh buffer (seconds before expiry)
    TOKEN_EXPIRY_BUFFER = 300

    def __init__(
        self, server: str, database: str, options: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize MSSQL client.

        Args:
            server: SQL Server address (e.g., "myserver.database.windows.net")
            database: Database name
            options: Additional options:
                - driver: ODBC driver name
                - encrypt / trust_cert: "Yes" or "No"
                - timeout: Connection timeout in seconds
                - port: Server port
                - authentication: "sql" (default) or "azure_ad"
                - username / password: SQL authentication credentials
        """
        super().__init__(options)
        self.server = server
        self.database = database

        self.driver = self.options.get("driver") or MSSQL_CONNECTION_DEFAULTS.driver
        self.encrypt = self.options.get("encrypt") or MSSQL_CONNECTION_DEFAULTS.encrypt
        self.trust_cert = (
            self.options.get("trust_cert") or MSSQL_CONNECTION_DEFAULTS.trust_cert
        )
        self.timeout = self.options.get("timeout") or MSSQL_CONNECTION_DEFAULTS.timeout
        self.port = self.options.get("port")
        self.authentication = self.options.get("authentication", "sql")

        self._credential: Optional[DefaultAzureCredential] = None
        self._token: Optional[AccessToken] = None
        self._conn: Optional[pyodbc.Connection] = None
        self._lock = asyncio.Lock()

        self.logger = get_logger("dbjournal.connections.mssql")

    @with_retry(retries=3, delay=2)
    async def connect(self) -> None:
        """
        Open the connection.

        Raises:
            DatabaseConnectionError: For transient connection failures (retried)
            DatabaseError: For anything else (missing driver, bad login, ...)
        """
        if self._conn is not None:
            return

        attrs_before: Dict[int, bytes] = {}
        if self.authentication == "azure_ad":
            token = await self._get_token()
            attrs_before[self.SQL_COPT_SS_ACCESS_TOKEN] = self._convert_token_to_bytes(
                token
            )

        conn_str = self._build_connection_string()
        self.logger.debug(f"Connecting to {self._mask_server()}.{self.database}")
        try:
            self._conn = await asyncio.to_thread(
                pyodbc.connect, conn_str, attrs_before=attrs_before, autocommit=True
            )
        except pyodbc.Error as e:
            raise self._translate_error(e) from e
        self.logger.debug(f"Connected to {self._mask_server()}.{self.database}")

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await asyncio.to_thread(conn.close)
        self.logger.debug("Connection closed")

    def _translate_error(self, error: pyodbc.Error) -> DatabaseError:
        error_msg = str(error)
        sqlstate = getattr(error, "sqlstate", None) or (
            error.args[0] if error.args and isinstance(error.args[0], str) else None
        )

        if "IM002" in error_msg:
            return DatabaseError(
                f"ODBC Driver not found. Expected: {self.driver}. "
                f"Install the Microsoft ODBC driver for SQL Server."
            )
        # 08xxx are connection-related per SQL standard
        if (sqlstate and sqlstate.startswith("08")) or "08S01" in error_msg:
            return DatabaseConnectionError(f"Connection error: {error_msg}")
        return DatabaseError(f"Database error: {error_msg}")

    def _require_connection(self) -> pyodbc.Connection:
        if self._conn is None:
            raise DatabaseConnectionError(
                "MSSQL client is not connected. Call connect() first."
            )
        return self._conn

    async def query(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        conn = self._require_connection()

        def _run() -> List[Dict[str, Any]]:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, *(params or []))
                columns = [d[0] for d in cursor.description or []]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()

        async with self._lock:
            try:
                return await asyncio.to_thread(_run)
            except pyodbc.Error as e:
                raise self._translate_error(e) from e

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        conn = self._require_connection()

        def _run() -> int:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, *(params or []))
                return cursor.rowcount
            finally:
                cursor.close()

        async with self._lock:
            try:
                return await asyncio.to_thread(_run)
            except pyodbc.Error as e:
                raise self._translate_error(e) from e

    async def begin(self) -> None:
        conn = self._require_connection()
        conn.autocommit = False

    async def commit(self) -> None:
        conn = self._require_connection()
        await asyncio.to_thread(conn.commit)
        conn.autocommit = True

    async def rollback(self) -> None:
        conn = self._require_connection()
        await asyncio.to_thread(conn.rollback)
        conn.autocommit = True

    async def current_timestamp(self) -> datetime:
        rows = await self.query("SELECT SYSDATETIME() AS now")
        # Truncate, never round up: the bound must not lie in the future
        return parse_timestamp(rows[0]["now"]).replace(microsecond=0)

    def quote(self, value: str) -> str:
        return "N'" + value.replace("'", "''") + "'"

    def quote_identifier(self, name: str) -> str:
        return "[" + name.replace("]", "]]") + "]"

    def bind_timestamp(self, value: datetime) -> Any:
        return value

    def _build_connection_string(self) -> str:
        server = f"{self.server},{self.port}" if self.port else self.server
        conn_str = (
            f"DRIVER={{{self.driver}}};"
            f"SERVER={server};"
            f"DATABASE={self.database};"
            f"Encrypt={self.encrypt};"
            f"TrustServerCertificate={self.trust_cert};"
            f"Timeout={self.timeout}"
        )
        if self.authentication != "azure_ad":
            username = self.options.get("username") or ""
            password = self.options.get("password") or ""
            conn_str += f";UID={username};PWD={{{password}}}"
        return conn_str

    async def _get_token(self) -> AccessToken:
        """Get an Azure AD token, reusing the cached one until close to expiry."""
        if self._token:
            time_remaining = self._token.expires_on - time.time()
            if time_remaining > self.TOKEN_EXPIRY_BUFFER:
                self.logger.debug(f"Using cached token ({time_remaining:.0f}s remaining)")
                return self._token

        if self._credential is None:
            self._credential = DefaultAzureCredential()

        self.logger.debug("Fetching new Azure AD token")
        self._token = await asyncio.to_thread(
            self._credential.get_token, "https://database.windows.net/.default"
        )
        return self._token

    def _convert_token_to_bytes(self, token: AccessToken) -> bytes:
        """
        Convert Azure AD token to the length-prefixed UTF-16LE byte string
        the SQL Server ODBC driver expects.
        """
        encoded_bytes = token.token.encode("utf-16-le")
        return struct.pack("<i", len(encoded_bytes)) + encoded_bytes

    def _mask_server(self) -> str:
        """Mask server name for logging (show only first part)."""
        if "." in self.server:
            return self.server.split(".")[0]
        return self.server


class MssqlCatalog(SchemaCatalog):
    """
    Schema catalog backed by INFORMATION_SCHEMA views.

    Only the connection's default schema is read, matching how the
    unqualified table names in scans and statements resolve.
    """

    async def list_tables(self) -> List[str]:
        rows = await self.client.query(
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA = SCHEMA_NAME() "
            "ORDER BY TABLE_NAME"
        )
        return [row["TABLE_NAME"] for row in rows]

    async def _load_table(self, table: str) -> Optional[TableSchema]:
        column_rows = await self.client.query(
            "SELECT COLUMN_NAME, DATA_TYPE FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_NAME = ? AND TABLE_SCHEMA = SCHEMA_NAME() "
            "ORDER BY ORDINAL_POSITION",
            [table],
        )
        if not column_rows:
            return None

        key_rows = await self.client.query(
            "SELECT kcu.COLUMN_NAME FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc "
            "JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu "
            "ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME "
            "AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA "
            "AND tc.TABLE_NAME = kcu.TABLE_NAME "
            "WHERE tc.TABLE_NAME = ? AND tc.TABLE_SCHEMA = SCHEMA_NAME() "
            "AND tc.CONSTRAINT_TYPE = 'PRIMARY KEY' "
            "ORDER BY kcu.ORDINAL_POSITION",
            [table],
        )
        primary_keys = tuple(row["COLUMN_NAME"] for row in key_rows)

        columns = tuple(
            ColumnInfo(
                name=row["COLUMN_NAME"],
                type=column_type_from_declared(row["DATA_TYPE"], "mssql"),
                declared_type=row["DATA_TYPE"],
                is_primary_key=row["COLUMN_NAME"] in primary_keys,
            )
            for row in column_rows
        )
        return TableSchema(name=table, columns=columns, primary_keys=primary_keys)
