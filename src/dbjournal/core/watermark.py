"""
Watermark tracking for incremental journaling.

Watermarks record, per table, the timestamp up to which changes have been
journaled. They live in a small table inside the journaled database so
that the watermark and the data it describes share one source of truth.

A watermark only moves forward through `commit()`, which is conditional on
the value read when the run's window was computed. A concurrent run against
the same table therefore fails its commit instead of silently skipping or
repeating a window.
"""
from datetime import datetime
from typing import List, Optional

from dbjournal.connections.base import DatabaseClient
from dbjournal.messages import get_logger
from dbjournal.utility.exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    WatermarkConflictError,
    WatermarkExistsError,
    WatermarkTableMissingError,
)
from dbjournal.utility.timestamps import parse_timestamp

from .models import TableWatermark

_DDL = {
    "sqlite": (
        "CREATE TABLE IF NOT EXISTS {table} ("
        "table_name VARCHAR(255) NOT NULL PRIMARY KEY, "
        "last_journal DATETIME NOT NULL, "
        "execution_time FLOAT NULL)"
    ),
    "mssql": (
        "IF OBJECT_ID(N'{name}', N'U') IS NULL "
        "CREATE TABLE {table} ("
        "table_name NVARCHAR(255) NOT NULL PRIMARY KEY, "
        "last_journal DATETIME2 NOT NULL, "
        "execution_time FLOAT NULL)"
    ),
}


class WatermarkStore:
    """
    Persistent per-table watermarks.

    Example:
        ```python
        store = WatermarkStore(client, "db_journal")
        await store.setup()
        await store.create("orders", datetime(2024, 1, 1))
        watermarks = await store.list_all()
        await store.commit("orders", new_time, 12.5, expected=old_time)
        ```

    Args:
        client: Connected database client
        table_name: Name of the watermark table
    """

    def __init__(self, client: DatabaseClient, table_name: str = "db_journal"):
        self.client = client
        self.table_name = table_name
        self._table = client.quote_identifier(table_name)
        self.logger = get_logger("dbjournal.watermark")

    async def exists(self) -> bool:
        try:
            await self.client.query(f"SELECT COUNT(*) AS n FROM {self._table}")
        except DatabaseConnectionError:
            raise
        except DatabaseError:
            return False
        return True

    async def ensure_installed(self) -> None:
        """
        Raises:
            WatermarkTableMissingError: If `setup` has not been run
        """
        if not await self.exists():
            raise WatermarkTableMissingError(
                f"Watermark table '{self.table_name}' not found. "
                f"Run 'dbjournal setup' first.",
                table=self.table_name,
            )

    async def setup(self) -> bool:
        """
        Create the watermark table.

        Returns:
            True if the table was created, False if it already existed
        """
        if await self.exists():
            self.logger.debug(f"Watermark table {self.table_name} already exists")
            return False
        template = _DDL.get(self.client.dialect, _DDL["sqlite"])
        await self.client.execute(
            template.format(table=self._table, name=self.table_name.replace("'", "''"))
        )
        self.logger.info(f"Created watermark table {self.table_name}")
        return True

    async def drop(self) -> None:
        if await self.exists():
            await self.client.execute(f"DROP TABLE {self._table}")
            self.logger.info(f"Dropped watermark table {self.table_name}")

    async def list_all(self) -> List[TableWatermark]:
        rows = await self.client.query(
            f"SELECT table_name, last_journal, execution_time FROM {self._table} "
            f"ORDER BY table_name"
        )
        return [self._to_watermark(row) for row in rows]

    async def get(self, table: str) -> Optional[TableWatermark]:
        rows = await self.client.query(
            f"SELECT table_name, last_journal, execution_time FROM {self._table} "
            f"WHERE table_name = ?",
            [table],
        )
        return self._to_watermark(rows[0]) if rows else None

    async def create(self, table: str, start: datetime) -> TableWatermark:
        """
        Raises:
            WatermarkExistsError: If the table already has a watermark
        """
        if await self.get(table) is not None:
            raise WatermarkExistsError(
                f"Table '{table}' already has a watermark", table=table
            )
        await self.client.execute(
            f"INSERT INTO {self._table} (table_name, last_journal, execution_time) "
            f"VALUES (?, ?, NULL)",
            [table, self.client.bind_timestamp(start)],
        )
        self.logger.debug(f"Created watermark {table} @ {start}")
        return TableWatermark(table_name=table, last_journal=start)

    async def force_reset(self, table: str, start: datetime) -> TableWatermark:
        """Overwrite a watermark unconditionally, clearing its execution time."""
        updated = await self.client.execute(
            f"UPDATE {self._table} SET last_journal = ?, execution_time = NULL "
            f"WHERE table_name = ?",
            [self.client.bind_timestamp(start), table],
        )
        if updated == 0:
            return await self.create(table, start)
        self.logger.warning(f"Reset watermark {table} @ {start}")
        return TableWatermark(table_name=table, last_journal=start)

    async def commit(
        self,
        table: str,
        new_time: datetime,
        duration_ms: Optional[float],
        expected: datetime,
    ) -> TableWatermark:
        """
        Advance a watermark after its entries were appended to the log.

        Raises:
            WatermarkConflictError: If the stored watermark is no longer `expected`
        """
        updated = await self.client.execute(
            f"UPDATE {self._table} SET last_journal = ?, execution_time = ? "
            f"WHERE table_name = ? AND last_journal = ?",
            [
                self.client.bind_timestamp(new_time),
                duration_ms,
                table,
                self.client.bind_timestamp(expected),
            ],
        )
        if updated != 1:
            current = await self.get(table)
            raise WatermarkConflictError(
                f"Watermark for '{table}' changed during the run "
                f"(expected {expected}, found "
                f"{current.last_journal if current else 'none'})",
                table=table,
            )
        return TableWatermark(
            table_name=table, last_journal=new_time, execution_time=duration_ms
        )

    async def truncate_all(self) -> None:
        await self.client.execute(f"DELETE FROM {self._table}")
        self.logger.warning(f"Removed every watermark from {self.table_name}")

    @staticmethod
    def _to_watermark(row) -> TableWatermark:
        execution_time = row["execution_time"]
        return TableWatermark(
            table_name=row["table_name"],
            last_journal=parse_timestamp(row["last_journal"]),
            execution_time=float(execution_time) if execution_time is not None else None,
        )
