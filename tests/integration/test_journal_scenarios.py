"""
End-to-end journaling scenarios against SQLite.

These tests drive DbJournal the way the command line does and then replay
the dumped statements into an empty copy of the schema, which must end up
holding the same rows as the source.
"""
from datetime import datetime

import pytest

from dbjournal.core.models import TableRunStatus
from dbjournal.core.service import DbJournal

pytestmark = pytest.mark.integration

LINE_ITEMS_DDL = (
    "CREATE TABLE line_items ("
    "order_id INTEGER, item INTEGER, qty INTEGER, "
    "created_at DATETIME, updated_at DATETIME, "
    "PRIMARY KEY (order_id, item))"
)

START = datetime(2024, 1, 1)
NOON = datetime(2024, 1, 1, 12)
EVENING = datetime(2024, 1, 1, 18)

TABLES = ("line_items", "orders")


@pytest.fixture
def shop(orders_db, sql):
    sql(orders_db, LINE_ITEMS_DDL)
    sql(
        orders_db,
        "INSERT INTO orders VALUES "
        "(1, 'Ann', 20, '2024-01-01 10:00:00', '2024-01-01 11:00:00')",
    )
    sql(
        orders_db,
        "INSERT INTO line_items VALUES "
        "(1, 1, 2, '2024-01-01 10:00:00', '2024-01-01 10:00:00'), "
        "(1, 2, 1, '2024-01-01 10:00:00', '2024-01-01 10:30:00')",
    )
    return orders_db


def replay(
    source, statements, make_database, sql, name="replica.db", ignore_conflicts=False
):
    """Create an empty copy of the source tables and apply the statements."""
    ddl = [
        row[0]
        for row in sql(
            source,
            f"SELECT sql FROM sqlite_master WHERE name IN {TABLES!r} ORDER BY name",
        )
    ]
    if ignore_conflicts:
        statements = [
            s.replace("INSERT INTO", "INSERT OR IGNORE INTO", 1) for s in statements
        ]
    return make_database(name, ddl + list(statements))


def snapshot(db, sql):
    return {
        table: sql(db, f"SELECT * FROM {table} ORDER BY 1, 2") for table in TABLES
    }


async def start_journal(journal):
    await journal.setup()
    await journal.init(start_time=START)


class TestReplay:
    @pytest.mark.asyncio
    async def test_replayed_log_matches_source(
        self, shop, project_config, make_database, sql
    ):
        async with DbJournal.from_config(project_config) as journal:
            await start_journal(journal)

            first = {r.table: r for r in await journal.run(NOON)}
            assert first["orders"].entries == 1
            assert first["orders"].suppressed == 1
            assert first["line_items"].entries == 2
            assert first["line_items"].suppressed == 1

            sql(
                shop,
                "UPDATE line_items SET qty = 5, updated_at = '2024-01-01 13:00:00' "
                "WHERE order_id = 1 AND item = 1",
            )
            second = {r.table: r for r in await journal.run(EVENING)}
            assert second["line_items"].entries == 1
            assert second["orders"].entries == 0

        statements = journal.dump()
        assert statements[-1] == (
            'UPDATE "line_items" SET "qty" = 5, '
            "\"created_at\" = '2024-01-01 10:00:00', "
            "\"updated_at\" = '2024-01-01 13:00:00' "
            'WHERE "order_id" = 1 AND "item" = 1;'
        )

        replica = replay(shop, statements, make_database, sql)
        assert snapshot(replica, sql) == snapshot(shop, sql)

    @pytest.mark.asyncio
    async def test_composite_key_header(self, shop, project_config):
        async with DbJournal.from_config(project_config) as journal:
            await start_journal(journal)
            await journal.run(NOON)

        lines = journal.log.path.read_text().splitlines()
        line_item_headers = [
            line.split("*/")[0] for line in lines if "|line_items|" in line
        ]
        assert line_item_headers == [
            "/*2024-01-01 10:00:00|line_items|created_at|order_id^item|1^1",
            "/*2024-01-01 10:00:00|line_items|created_at|order_id^item|1^2",
        ]

    @pytest.mark.asyncio
    async def test_dump_is_repeatable(self, shop, project_config):
        async with DbJournal.from_config(project_config) as journal:
            await start_journal(journal)
            await journal.run(NOON)

        before = journal.log.path.read_bytes()
        assert journal.dump(table="orders") == journal.dump(table="orders")
        assert journal.log.path.read_bytes() == before


class TestCrashBetweenAppendAndCommit:
    @pytest.mark.asyncio
    async def test_duplicates_replay_to_the_same_state(
        self, shop, project_config, make_database, sql, monkeypatch
    ):
        async with DbJournal.from_config(project_config) as journal:
            await start_journal(journal)

            original_commit = journal.store.commit

            async def crash_on_orders(table, *args, **kwargs):
                if table == "orders":
                    raise RuntimeError("process killed")
                return await original_commit(table, *args, **kwargs)

            monkeypatch.setattr(journal.store, "commit", crash_on_orders)
            crashed = {r.table: r for r in await journal.run(NOON)}
            assert crashed["orders"].status == TableRunStatus.FAIL
            assert crashed["line_items"].status == TableRunStatus.PASS
            assert (await journal.store.get("orders")).last_journal == START

            monkeypatch.undo()
            retried = {r.table: r for r in await journal.run(NOON)}
            assert retried["orders"].status == TableRunStatus.PASS
            assert retried["line_items"].status == TableRunStatus.SKIP

        orders = journal.dump(table="orders")
        assert len(orders) == 2
        assert orders[0] == orders[1]

        replica = replay(
            shop, journal.dump(), make_database, sql, ignore_conflicts=True
        )
        assert snapshot(replica, sql) == snapshot(shop, sql)
