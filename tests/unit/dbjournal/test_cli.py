"""
Tests for the dbjournal command line.

Every test points --config at a dbjournal.yml in a temporary directory
holding the shop database.
"""
import pytest
import yaml

from dbjournal.cli import CliState, dbjournal


@pytest.fixture
def config_file(temp_dir, orders_db):
    path = temp_dir / "dbjournal.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "name": "shop",
                "connection": {"type": "sqlite", "path": orders_db.name},
            }
        )
    )
    return path


@pytest.fixture
def invoke(cli_runner, config_file):
    def _invoke(*args, input=None):
        return cli_runner.invoke(
            dbjournal, ["--config", str(config_file), *args], input=input
        )

    return _invoke


@pytest.fixture
def initialized(invoke):
    assert invoke("setup").exit_code == 0
    result = invoke("--yes", "init", "--time", "2024-01-01")
    assert result.exit_code == 0, result.output
    return invoke


def add_order(sql, db, order_id, customer, created, updated=None):
    sql(
        db,
        "INSERT INTO orders (id, customer, total, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?)",
        (order_id, customer, 10, created, updated or created),
    )


class TestSetupAndInit:
    def test_setup_twice(self, invoke):
        first = invoke("setup")
        assert first.exit_code == 0
        assert "Watermark table created" in first.output

        second = invoke("setup")
        assert second.exit_code == 0
        assert "already exists" in second.output

    def test_init_without_setup_fails(self, invoke):
        result = invoke("init")
        assert result.exit_code == 1
        assert "dbjournal setup" in result.output

    def test_init_reports_each_table(self, initialized):
        result = initialized("init")
        assert result.exit_code == 0
        assert "skipped  orders" in result.output
        assert "0 watermarks created" in result.output

    def test_force_reset_requires_confirmation(self, initialized):
        result = initialized("init", "--force", input="n\n")
        assert result.exit_code == 1
        assert "Aborted" in result.output

    def test_force_reset_confirmed(self, initialized):
        result = initialized("init", "--force", "--time", "2024-02-01", input="y\ny\n")
        assert result.exit_code == 0
        assert "reset    orders @ 2024-02-01 00:00:00" in result.output

    def test_invalid_time_is_usage_error(self, invoke):
        result = invoke("init", "--time", "yesterday")
        assert result.exit_code == 2
        assert "is invalid" in result.output


class TestUpdateAndDump:
    def test_update_then_dump(self, initialized, orders_db, sql):
        add_order(sql, orders_db, 1, "Ann", "2024-01-01 10:00:00")

        update = initialized("--yes", "update", "--time", "2024-01-01 12:00:00")
        assert update.exit_code == 0, update.output

        dump = initialized("dump", "--table", "orders")
        assert dump.exit_code == 0
        statements = [
            line
            for line in dump.output.splitlines()
            if line.startswith(("INSERT", "UPDATE"))
        ]
        assert len(statements) == 1
        assert statements[0].startswith('INSERT INTO "orders"')
        assert "'Ann'" in statements[0]

    def test_dump_time_filters(self, initialized, orders_db, sql):
        add_order(sql, orders_db, 1, "Ann", "2024-01-01 10:00:00")
        add_order(sql, orders_db, 2, "Bob", "2024-01-01 11:00:00")
        initialized("--yes", "update", "--time", "2024-01-01 12:00:00")

        result = initialized("dump", "--from", "2024-01-01 10:30:00")
        assert "'Bob'" in result.output
        assert "'Ann'" not in result.output

    def test_update_time_requires_confirmation(self, initialized):
        result = initialized("update", "--time", "2024-01-01 12:00:00", input="n\n")
        assert result.exit_code == 1
        assert "Aborted" in result.output

    def test_failed_table_sets_exit_code(self, initialized, orders_db, sql):
        sql(
            orders_db,
            "CREATE TABLE legacy (note TEXT, created_at DATETIME, updated_at DATETIME)",
        )
        initialized("--yes", "init", "--time", "2024-01-01")
        add_order(sql, orders_db, 1, "Ann", "2024-01-01 10:00:00")

        result = initialized("--yes", "update", "--time", "2024-01-01 12:00:00")
        assert result.exit_code == 1
        assert "FAILED legacy" in result.output

        dump = initialized("dump", "--table", "orders")
        assert "'Ann'" in dump.output

    def test_dump_without_log(self, invoke):
        result = invoke("dump")
        assert result.exit_code == 0
        assert "INSERT" not in result.output


class TestMaintenance:
    def test_status(self, initialized):
        result = initialized("status")
        assert result.exit_code == 0
        assert "orders" in result.output
        assert "2024-01-01 00:00:00" in result.output

    def test_status_without_watermarks(self, invoke):
        invoke("setup")
        result = invoke("status")
        assert result.exit_code == 0
        assert "No watermarks" in result.output

    def test_clean_archives_log(self, initialized, orders_db, sql, temp_dir):
        add_order(sql, orders_db, 1, "Ann", "2024-01-01 10:00:00")
        initialized("--yes", "update", "--time", "2024-01-01 12:00:00")

        result = initialized("--yes", "clean")
        assert result.exit_code == 0
        assert "Watermarks removed" in result.output
        assert "archived to" in result.output
        assert not (temp_dir / "db_journal" / "journal.log").exists()
        assert "No watermarks" in initialized("status").output

    def test_uninstall(self, initialized):
        result = initialized("--yes", "uninstall")
        assert result.exit_code == 0
        assert "uninstalled" in result.output

        status = initialized("status")
        assert status.exit_code == 1

    def test_schema(self, invoke):
        result = invoke("schema")
        assert result.exit_code == 0
        assert "orders" in result.output
        assert "  total: DECIMAL(10,2)" in result.output

    def test_time(self, invoke):
        result = invoke("time")
        assert result.exit_code == 0
        assert result.output.strip()[:2] == "20"

    def test_debug(self, invoke):
        result = invoke("debug")
        assert result.exit_code == 0
        assert "Project: shop" in result.output
        assert "Connection successful" in result.output
        assert "Watermark table installed: no" in result.output

    def test_debug_loads_project_once(self, invoke, monkeypatch):
        calls = []
        original = CliState.load

        def counting_load(self):
            calls.append(self)
            return original(self)

        monkeypatch.setattr(CliState, "load", counting_load)
        result = invoke("debug")
        assert result.exit_code == 0, result.output
        assert len(calls) == 1


def test_missing_config_file(cli_runner, temp_dir):
    result = cli_runner.invoke(
        dbjournal, ["--config", str(temp_dir / "missing.yml"), "time"]
    )
    assert result.exit_code == 1
    assert "Configuration error" in result.output
