"""
Tests for ChangeScanner queries against SQLite.
"""
from datetime import datetime

import pytest

from dbjournal.connections import SqliteCatalog, SqliteClient
from dbjournal.core.configs import ColumnsConfig
from dbjournal.core.models import ChangeWindow, ColumnInfo, ColumnType, TableSchema
from dbjournal.core.scanner import ChangeScanner

WINDOW = ChangeWindow(lower=datetime(2024, 1, 1), upper=datetime(2024, 1, 1, 12))


@pytest.fixture
def shop_db(orders_db, sql):
    rows = [
        # created and updated in window
        (1, "Ann", "2024-01-01 10:00:00", "2024-01-01 10:00:00"),
        # created before, updated in window
        (2, "Bob", "2023-12-31 09:00:00", "2024-01-01 11:00:00"),
        # created in window, updated later in window
        (3, "Cid", "2024-01-01 02:00:00", "2024-01-01 03:00:00"),
        # no created_at, updated in window
        (4, "Dee", None, "2024-01-01 04:00:00"),
        # exactly on the lower bound: excluded
        (5, "Eve", "2024-01-01 00:00:00", "2024-01-01 00:00:00"),
        # exactly on the upper bound: included
        (6, "Fay", "2024-01-01 12:00:00", "2024-01-01 12:00:00"),
        # after the window
        (7, "Gus", "2024-01-01 13:00:00", "2024-01-01 13:00:00"),
    ]
    for row in rows:
        sql(
            orders_db,
            "INSERT INTO orders (id, customer, created_at, updated_at) VALUES (?, ?, ?, ?)",
            row,
        )
    return orders_db


class TestQueries:
    def test_update_query_excludes_creation_signal(self):
        client = SqliteClient(":memory:")
        scanner = ChangeScanner(client, ColumnsConfig())
        schema = TableSchema(
            name="orders",
            columns=(
                ColumnInfo(name="id", type=ColumnType.INTEGER, is_primary_key=True),
                ColumnInfo(name="created_at", type=ColumnType.DATETIME),
                ColumnInfo(name="updated_at", type=ColumnType.DATETIME),
            ),
            primary_keys=("id",),
        )
        assert scanner.build_insert_query(schema) == (
            'SELECT "id", "created_at", "updated_at" FROM "orders" '
            'WHERE julianday("created_at") > julianday(?) '
            'AND julianday("created_at") <= julianday(?) '
            'ORDER BY julianday("created_at") ASC'
        )
        assert scanner.build_update_query(schema) == (
            'SELECT "id", "created_at", "updated_at" FROM "orders" '
            'WHERE julianday("updated_at") > julianday(?) '
            'AND julianday("updated_at") <= julianday(?) '
            'AND (julianday("updated_at") <> julianday("created_at") '
            'OR julianday("created_at") IS NULL) '
            'ORDER BY julianday("updated_at") ASC'
        )


class TestScan:
    @pytest.mark.asyncio
    async def test_scan_window(self, shop_db):
        async with SqliteClient(str(shop_db)) as client:
            schema = await SqliteCatalog(client).describe("orders")
            changes = await ChangeScanner(client, ColumnsConfig()).scan(schema, WINDOW)

        inserted = [row["id"] for row in changes.inserts.iter_rows(named=True)]
        updated = [row["id"] for row in changes.updates.iter_rows(named=True)]
        assert inserted == [3, 1, 6]
        assert updated == [3, 4, 2]
        assert changes.inserts.columns == schema.column_names

    @pytest.mark.asyncio
    async def test_table_with_only_created_column(self, make_database, sql):
        path = make_database(
            "events.db", ["CREATE TABLE events (name TEXT, created_at DATETIME)"]
        )
        sql(path, "INSERT INTO events VALUES ('boot', '2024-01-01 05:00:00')")
        async with SqliteClient(str(path)) as client:
            schema = await SqliteCatalog(client).describe("events")
            scanner = ChangeScanner(client, ColumnsConfig())
            assert scanner.is_journaled(schema)
            changes = await scanner.scan(schema, WINDOW)

        assert changes.inserts.height == 1
        assert changes.updates.height == 0

    @pytest.mark.asyncio
    async def test_custom_column_names(self, make_database, sql):
        path = make_database(
            "custom.db",
            ["CREATE TABLE items (id INTEGER PRIMARY KEY, born DATETIME, touched DATETIME)"],
        )
        sql(path, "INSERT INTO items VALUES (1, '2024-01-01 01:00:00', '2024-01-01 02:00:00')")
        columns = ColumnsConfig(created_at="born", updated_at="touched")
        async with SqliteClient(str(path)) as client:
            schema = await SqliteCatalog(client).describe("items")
            changes = await ChangeScanner(client, columns).scan(schema, WINDOW)

        assert changes.inserts.height == 1
        assert changes.updates.height == 1

    @pytest.mark.asyncio
    async def test_iso_text_variants_compare_as_instants(self, orders_db, sql):
        rows = [
            # "T" separator inside the window
            (1, "2024-01-01T10:00:00"),
            # zero fraction on the upper bound: included
            (2, "2024-01-01 12:00:00.000"),
            # just under the upper bound
            (3, "2024-01-01T11:59:59.999"),
            # fraction past the upper bound
            (4, "2024-01-01 12:00:00.500"),
            # fraction past the lower bound
            (5, "2024-01-01 00:00:00.250"),
        ]
        for row_id, created in rows:
            sql(
                orders_db,
                "INSERT INTO orders (id, created_at, updated_at) VALUES (?, ?, ?)",
                (row_id, created, created),
            )
        async with SqliteClient(str(orders_db)) as client:
            schema = await SqliteCatalog(client).describe("orders")
            changes = await ChangeScanner(client, ColumnsConfig()).scan(schema, WINDOW)

        inserted = [row["id"] for row in changes.inserts.iter_rows(named=True)]
        assert inserted == [5, 1, 3, 2]
        assert changes.updates.height == 0
