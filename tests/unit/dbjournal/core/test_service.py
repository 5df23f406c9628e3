"""
Tests for the DbJournal service operations.
"""
from datetime import datetime

import polars as pl
import pytest

from dbjournal.core.models import InitAction, TableRunStatus
from dbjournal.core.service import DbJournal
from dbjournal.utility.exceptions import (
    IllegalIdentifierError,
    WatermarkTableMissingError,
)

START = datetime(2024, 1, 1)
NOON = datetime(2024, 1, 1, 12)


@pytest.fixture
def seeded_db(orders_db, sql):
    sql(orders_db, "CREATE TABLE events (name TEXT, created_at DATETIME)")
    sql(
        orders_db,
        "INSERT INTO orders VALUES (1, 'Ann', 10, '2024-01-01 10:00:00', "
        "'2024-01-01 10:00:00')",
    )
    sql(orders_db, "INSERT INTO events VALUES ('boot', '2024-01-01 11:00:00')")
    return orders_db


class TestSetupAndInit:
    @pytest.mark.asyncio
    async def test_init_requires_setup(self, project_config):
        async with DbJournal.from_config(project_config) as journal:
            with pytest.raises(WatermarkTableMissingError):
                await journal.init(START)

    @pytest.mark.asyncio
    async def test_init_watermarks_eligible_tables(self, project_config, seeded_db):
        async with DbJournal.from_config(project_config) as journal:
            assert await journal.setup() is True
            results = await journal.init(START)
            watermarks = await journal.store.list_all()

        assert {r.table: r.action for r in results} == {
            "events": InitAction.CREATED,
            "orders": InitAction.CREATED,
        }
        # settings has no timestamp columns; the watermark table is never journaled
        assert [w.table_name for w in watermarks] == ["events", "orders"]
        assert all(w.last_journal == START for w in watermarks)

    @pytest.mark.asyncio
    async def test_init_again_skips_or_resets(self, project_config, seeded_db):
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            await journal.init(START)

            skipped = await journal.init(NOON)
            assert {r.action for r in skipped} == {InitAction.SKIPPED}
            assert (await journal.store.get("orders")).last_journal == START

            reset = await journal.init(NOON, force_reset=True)
            assert {r.action for r in reset} == {InitAction.RESET}
            assert (await journal.store.get("orders")).last_journal == NOON

    @pytest.mark.asyncio
    async def test_init_picks_up_new_tables(self, project_config, seeded_db, sql):
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            await journal.init(START)
            sql(seeded_db, "CREATE TABLE refunds (id INTEGER PRIMARY KEY, created_at DATETIME)")
            results = await journal.init(NOON)

        actions = {r.table: r.action for r in results}
        assert actions["refunds"] == InitAction.CREATED
        assert actions["orders"] == InitAction.SKIPPED

    @pytest.mark.asyncio
    async def test_init_rejects_reserved_table_name_before_writing(
        self, project_config, orders_db, sql
    ):
        sql(orders_db, 'CREATE TABLE "bad|name" (id INTEGER PRIMARY KEY, created_at DATETIME)')
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            with pytest.raises(IllegalIdentifierError):
                await journal.init(START)
            assert await journal.store.list_all() == []


class TestRunAndDump:
    @pytest.mark.asyncio
    async def test_run_then_dump(self, project_config, seeded_db):
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            await journal.init(START)
            results = await journal.run(NOON)

        assert {r.status for r in results} == {TableRunStatus.PASS}
        assert len(journal.dump()) == 2
        assert journal.dump(table="events") == [
            "INSERT INTO \"events\" (\"name\", \"created_at\") "
            "VALUES ('boot', '2024-01-01 11:00:00');"
        ]
        assert journal.dump(min_time="2024-01-01 10:30:00") == journal.dump(table="events")
        assert journal.dump(max_time=datetime(2024, 1, 1, 10)) == journal.dump(table="orders")
        assert journal.dump(min_time="2024-01-02") == []

    @pytest.mark.asyncio
    async def test_dump_bounds_match_iso_stored_time(self, project_config, orders_db, sql):
        sql(
            orders_db,
            "INSERT INTO orders VALUES (1, 'Ann', 10, '2024-01-01T10:00:00', "
            "'2024-01-01T10:00:00')",
        )
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            await journal.init(START)
            await journal.run(NOON)

        everything = journal.dump()
        assert len(everything) == 1
        exact = journal.dump(min_time="2024-01-01 10:00:00", max_time="2024-01-01 10:00:00")
        assert exact == everything

    def test_dump_without_log(self, project_config):
        assert DbJournal.from_config(project_config).dump() == []


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_clean_archives_log_and_truncates(self, project_config, seeded_db):
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            await journal.init(START)
            await journal.run(NOON)

            archived = await journal.clean()
            remaining = await journal.store.list_all()

        assert archived is not None and archived.exists()
        assert not journal.log.path.exists()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_uninstall(self, project_config, seeded_db):
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            await journal.init(START)
            await journal.run(NOON)
            await journal.clean()

            await journal.uninstall()
            assert not await journal.store.exists()

        assert not journal.log.path.parent.exists()


class TestInformation:
    @pytest.mark.asyncio
    async def test_time(self, project_config):
        async with DbJournal.from_config(project_config) as journal:
            now = await journal.time()
        assert isinstance(now, datetime)

    @pytest.mark.asyncio
    async def test_schema(self, project_config):
        async with DbJournal.from_config(project_config) as journal:
            schema = await journal.schema()
        assert schema["orders"]["id"] == "INTEGER"
        assert schema["orders"]["total"] == "DECIMAL(10,2)"
        assert list(schema["settings"]) == ["name", "value"]

    @pytest.mark.asyncio
    async def test_status(self, project_config, seeded_db):
        async with DbJournal.from_config(project_config) as journal:
            await journal.setup()
            await journal.init(START)
            await journal.run(NOON)
            status = await journal.status()

        assert isinstance(status, pl.DataFrame)
        assert status.columns == ["table", "last_journal", "execution_time_ms"]
        assert status["table"].to_list() == ["events", "orders"]
        assert status["last_journal"].to_list() == [NOON, NOON]
