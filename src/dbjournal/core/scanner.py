"""
Change scanner: candidate rows for one table and one window.

Two read-only queries per table:
- created: `created_at` in (lower, upper], ascending
- updated: `updated_at` in (lower, upper], ascending, excluding rows whose
  `updated_at` equals `created_at` (the created query already has them)
  unless `created_at` is NULL

Timestamps are compared through the client's `timestamp_expr`, so SQLite
text in any ISO form is compared as the instant it names.

Rows come back as polars DataFrames with every catalog column in catalog
order, so the encoder sees the same shape regardless of the driver.
"""
from typing import Any, Dict, List

import polars as pl

from dbjournal.connections.base import DatabaseClient
from dbjournal.core.configs import ColumnsConfig
from dbjournal.messages import get_logger

from .models import ChangeSet, ChangeWindow, TableSchema


class ChangeScanner:
    """
    Queries created and updated candidate rows.

    Example:
        ```python
        scanner = ChangeScanner(client, ColumnsConfig())
        changes = await scanner.scan(schema, window)
        for row in changes.inserts.iter_rows(named=True):
            ...
        ```
    """

    def __init__(self, client: DatabaseClient, columns: ColumnsConfig):
        self.client = client
        self.columns = columns
        self.logger = get_logger("dbjournal.scanner")

    def is_journaled(self, schema: TableSchema) -> bool:
        """A table takes part in journaling if it has either timestamp column."""
        return schema.has_column(self.columns.created_at) or schema.has_column(
            self.columns.updated_at
        )

    def build_insert_query(self, schema: TableSchema) -> str:
        q = self.client.quote_identifier
        created = self._instant(self.columns.created_at)
        return (
            f"SELECT {self._select_list(schema)} FROM {q(schema.name)} "
            f"WHERE {self._in_window(created)} "
            f"ORDER BY {created} ASC"
        )

    def build_update_query(self, schema: TableSchema) -> str:
        q = self.client.quote_identifier
        updated = self._instant(self.columns.updated_at)
        sql = (
            f"SELECT {self._select_list(schema)} FROM {q(schema.name)} "
            f"WHERE {self._in_window(updated)}"
        )
        if schema.has_column(self.columns.created_at):
            created = self._instant(self.columns.created_at)
            sql += f" AND ({updated} <> {created} OR {created} IS NULL)"
        return sql + f" ORDER BY {updated} ASC"

    async def scan(self, schema: TableSchema, window: ChangeWindow) -> ChangeSet:
        """
        Fetch candidate rows for a window.

        Raises:
            DatabaseError: If either query fails
        """
        params = [
            self.client.bind_timestamp(window.lower),
            self.client.bind_timestamp(window.upper),
        ]

        inserts: List[Dict[str, Any]] = []
        updates: List[Dict[str, Any]] = []
        if schema.has_column(self.columns.created_at):
            inserts = await self.client.query(self.build_insert_query(schema), params)
        if schema.has_column(self.columns.updated_at):
            updates = await self.client.query(self.build_update_query(schema), params)

        self.logger.debug(
            f"{schema.name}: {len(inserts)} created, {len(updates)} updated "
            f"in ({window.lower}, {window.upper}]"
        )
        return ChangeSet(
            table=schema.name,
            window=window,
            inserts=self._to_frame(inserts, schema),
            updates=self._to_frame(updates, schema),
        )

    def _instant(self, column: str) -> str:
        return self.client.timestamp_expr(self.client.quote_identifier(column))

    def _in_window(self, instant: str) -> str:
        bound = self.client.timestamp_expr("?")
        return f"{instant} > {bound} AND {instant} <= {bound}"

    def _select_list(self, schema: TableSchema) -> str:
        return ", ".join(self.client.quote_identifier(c) for c in schema.column_names)

    @staticmethod
    def _to_frame(rows: List[Dict[str, Any]], schema: TableSchema) -> pl.DataFrame:
        # Object columns hand the driver values to the codec unchanged; SQLite
        # columns may mix value types within one column
        return pl.DataFrame(
            [
                pl.Series(name, [row.get(name) for row in rows], dtype=pl.Object)
                for name in schema.column_names
            ]
        )
