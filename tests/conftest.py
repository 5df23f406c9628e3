"""
Common test fixtures and configuration.

Databases are plain SQLite files in a temporary directory, created with the
standard library driver so fixtures stay synchronous; tests open their own
async client against them.
"""
import os
import shutil
import sqlite3
import sys
import tempfile
from pathlib import Path
from typing import Iterable

import pytest
from click.testing import CliRunner

# Add src directory to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Keep log files out of the working tree; set before any logger is created
os.environ.setdefault("DBJOURNAL_LOG_DIR", tempfile.mkdtemp(prefix="dbjournal-logs-"))

from dbjournal.core.configs import (  # noqa: E402
    ConnectionConfig,
    JournalConfig,
    ProjectConfig,
)

ORDERS_DDL = (
    "CREATE TABLE orders ("
    "id INTEGER PRIMARY KEY, "
    "customer VARCHAR(100), "
    "total DECIMAL(10,2), "
    "created_at DATETIME, "
    "updated_at DATETIME)"
)


def create_database(path: Path, statements: Iterable[str]) -> Path:
    """Run DDL/DML statements against a SQLite file."""
    conn = sqlite3.connect(path)
    try:
        for statement in statements:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()
    return path


def run_sql(path: Path, sql: str, params=()) -> list:
    conn = sqlite3.connect(path)
    try:
        rows = conn.execute(sql, params).fetchall()
        conn.commit()
        return rows
    finally:
        conn.close()


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def orders_db(temp_dir):
    """Database with one keyed, journaled table and one untracked table."""
    return create_database(
        temp_dir / "shop.db",
        [
            ORDERS_DDL,
            "CREATE TABLE settings (name VARCHAR(50) PRIMARY KEY, value TEXT)",
        ],
    )


@pytest.fixture
def project_config(temp_dir, orders_db):
    return ProjectConfig(
        name="shop",
        connection=ConnectionConfig(type="sqlite", path=str(orders_db)),
        journal=JournalConfig(path=str(temp_dir / "db_journal" / "journal.log")),
    )


@pytest.fixture
def make_database(temp_dir):
    """Factory: make_database("name.db", [statements]) -> path."""

    def _make(name: str, statements: Iterable[str]) -> Path:
        return create_database(temp_dir / name, statements)

    return _make


@pytest.fixture
def sql():
    """Run one statement against a SQLite file: sql(path, "SELECT ...")."""
    return run_sql
