"""
SQLite client and schema catalog.

Simple, file-based database support - perfect for local development,
tests, and small deployments.
"""
import asyncio
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from dbjournal.core.models import ColumnInfo, TableSchema
from dbjournal.messages import get_logger
from dbjournal.utility.exceptions import DatabaseConnectionError, DatabaseError
from dbjournal.utility.retry import with_retry
from dbjournal.utility.timestamps import format_timestamp, parse_timestamp

from .base import DatabaseClient, SchemaCatalog
from .types import column_type_from_declared


class SqliteClient(DatabaseClient):
    """
    SQLite database client.

    One connection in autocommit mode; transactions are explicit
    BEGIN/COMMIT. Driver calls run in a worker thread and are serialized by
    an asyncio.Lock since the connection is shared between tasks.

    Example:
        ```python
        async with SqliteClient("data/app.db") as client:
            now = await client.current_timestamp()
        ```
    """

    dialect = "sqlite"

    def __init__(self, path: str, options: Optional[Dict[str, Any]] = None):
        super().__init__(options)
        self.path = str(path)
        self.timeout = self.options.get("timeout", 30)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self.logger = get_logger("dbjournal.connections.sqlite")

    @with_retry(retries=3, delay=1)
    async def connect(self) -> None:
        if self._conn is not None:
            return
        if self.path != ":memory:" and not Path(self.path).parent.exists():
            raise DatabaseError(
                f"Directory for SQLite database '{self.path}' does not exist",
                path=self.path,
            )
        try:
            self._conn = await asyncio.to_thread(
                sqlite3.connect,
                self.path,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to open SQLite database '{self.path}': {e}", path=self.path
            ) from e
        self.logger.debug(f"Connected to {self.path}")

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await asyncio.to_thread(conn.close)
        self.logger.debug(f"Closed {self.path}")

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseConnectionError(
                "SQLite client is not connected. Call connect() first."
            )
        return self._conn

    async def query(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        conn = self._require_connection()

        def _run() -> List[Dict[str, Any]]:
            cursor = conn.execute(sql, list(params or []))
            try:
                columns = [d[0] for d in cursor.description or []]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()

        async with self._lock:
            try:
                return await asyncio.to_thread(_run)
            except sqlite3.Error as e:
                raise DatabaseError(f"Query failed: {e}", sql=sql) from e

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        conn = self._require_connection()

        def _run() -> int:
            cursor = conn.execute(sql, list(params or []))
            try:
                return cursor.rowcount
            finally:
                cursor.close()

        async with self._lock:
            try:
                return await asyncio.to_thread(_run)
            except sqlite3.Error as e:
                raise DatabaseError(f"Statement failed: {e}", sql=sql) from e

    async def begin(self) -> None:
        await self.execute("BEGIN")

    async def commit(self) -> None:
        await self.execute("COMMIT")

    async def rollback(self) -> None:
        await self.execute("ROLLBACK")

    async def current_timestamp(self) -> datetime:
        rows = await self.query("SELECT CURRENT_TIMESTAMP AS now")
        return parse_timestamp(rows[0]["now"])

    def quote(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def bind_timestamp(self, value: datetime) -> Any:
        # SQLite compares timestamps as text
        return format_timestamp(value)

    def timestamp_expr(self, expr: str) -> str:
        # Stored text may use "T", fractional seconds or an offset; julianday()
        # reads all of them as the same instant
        return f"julianday({expr})"

    def normalize_timestamp(self, value: datetime) -> datetime:
        # julianday() keeps whole milliseconds, rounding half up
        milliseconds = (value.microsecond + 500) // 1000
        return value.replace(microsecond=0) + timedelta(milliseconds=milliseconds)


class SqliteCatalog(SchemaCatalog):
    """Schema catalog backed by sqlite_master and PRAGMA table_info."""

    async def list_tables(self) -> List[str]:
        rows = await self.client.query(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]

    async def _load_table(self, table: str) -> Optional[TableSchema]:
        rows = await self.client.query(
            f"PRAGMA table_info({self.client.quote_identifier(table)})"
        )
        if not rows:
            return None

        columns = []
        keyed = []
        for row in rows:
            is_pk = bool(row["pk"])
            columns.append(
                ColumnInfo(
                    name=row["name"],
                    type=column_type_from_declared(row["type"], "sqlite"),
                    declared_type=row["type"] or "",
                    is_primary_key=is_pk,
                )
            )
            if is_pk:
                keyed.append((row["pk"], row["name"]))

        primary_keys = tuple(name for _, name in sorted(keyed))
        return TableSchema(name=table, columns=tuple(columns), primary_keys=primary_keys)
