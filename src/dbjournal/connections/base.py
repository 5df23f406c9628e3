"""
Base interfaces for the database client and the schema catalog.

Defines the contract every database-specific implementation must fulfil.
The journal core only ever talks to these two interfaces; concrete
instances are constructed once and passed in explicitly.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from dbjournal.core.models import ColumnInfo, TableSchema
from dbjournal.utility.exceptions import TableNotFoundError


class DatabaseClient(ABC):
    """
    Abstract base class for database clients.

    A client owns one connection, executes parameterized statements, and
    provides the dialect primitives the journal needs: string escaping,
    identifier quoting, timestamp binding and the database clock.

    All blocking driver calls must be wrapped in asyncio.to_thread() by
    subclasses to keep the event loop responsive.

    Example:
        ```python
        client = SqliteClient("data/app.db")
        await client.connect()
        rows = await client.query("SELECT * FROM orders WHERE id = ?", [1])
        await client.close()
        ```
    """

    dialect: str = "generic"

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        self.options = options or {}

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection."""
        pass

    @abstractmethod
    async def query(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Run a query and return every row as a column -> value dict.

        Raises:
            DatabaseError: If the statement fails
        """
        pass

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        Run a DDL/DML statement.

        Returns:
            Number of affected rows (-1 when the driver cannot tell)

        Raises:
            DatabaseError: If the statement fails
        """
        pass

    @abstractmethod
    async def begin(self) -> None:
        pass

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass

    @abstractmethod
    async def current_timestamp(self) -> datetime:
        """Return the database's current time."""
        pass

    @abstractmethod
    def quote(self, value: str) -> str:
        """Escape and single-quote a string literal."""
        pass

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Quote a table or column name."""
        pass

    @abstractmethod
    def bind_timestamp(self, value: datetime) -> Any:
        """Convert a datetime into the parameter form the driver compares correctly."""
        pass

    def timestamp_expr(self, expr: str) -> str:
        """
        SQL expression comparing `expr` (a column or a `?` placeholder) as an
        instant. Databases with native timestamp types compare as-is.
        """
        return expr

    def normalize_timestamp(self, value: datetime) -> datetime:
        """Round a timestamp to the precision `timestamp_expr` compares at."""
        return value

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["DatabaseClient"]:
        """Run the enclosed statements in one transaction."""
        await self.begin()
        try:
            yield self
        except BaseException:
            await self.rollback()
            raise
        await self.commit()

    async def __aenter__(self) -> "DatabaseClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class SchemaCatalog(ABC):
    """
    Abstract base class for schema catalogs.

    Answers which tables exist, which columns they have, of which type, and
    which of them form the primary key. Implementations cache table
    descriptions; call `refresh()` after DDL.
    """

    def __init__(self, client: DatabaseClient):
        self.client = client
        self._cache: Dict[str, TableSchema] = {}

    @abstractmethod
    async def list_tables(self) -> List[str]:
        pass

    @abstractmethod
    async def _load_table(self, table: str) -> Optional[TableSchema]:
        """Read one table's description, or None if it does not exist."""
        pass

    async def describe(self, table: str) -> TableSchema:
        """
        Return the table's schema.

        Raises:
            TableNotFoundError: If the table does not exist
        """
        if table not in self._cache:
            schema = await self._load_table(table)
            if schema is None:
                raise TableNotFoundError(f"Table '{table}' not found", table=table)
            self._cache[table] = schema
        return self._cache[table]

    async def exists(self, table: str) -> bool:
        return table in await self.list_tables()

    async def columns_of(self, table: str) -> List[ColumnInfo]:
        return list((await self.describe(table)).columns)

    async def primary_keys_of(self, table: str) -> List[str]:
        return list((await self.describe(table)).primary_keys)

    def refresh(self) -> None:
        self._cache.clear()
