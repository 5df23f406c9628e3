"""
DbJournal service: the operations offered to the command line.

Every operation is an explicit method; the command line decides which one
to call and asks for confirmation beforehand where an operation is
destructive.
"""
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl

from dbjournal.connections.base import DatabaseClient, SchemaCatalog
from dbjournal.connections.factory import create_client
from dbjournal.core.configs import ProjectConfig
from dbjournal.messages import get_logger
from dbjournal.utility.timestamps import normalize_bound

from .encoder import validate_identifier
from .journal import JournalLog
from .models import InitAction, InitResult, TableRunResult
from .orchestrator import JournalOrchestrator
from .watermark import WatermarkStore

Bound = Optional[Union[str, datetime]]


class DbJournal:
    """
    Change journal for one database.

    Example:
        ```python
        async with DbJournal.from_config(config, root=workspace.root) as journal:
            await journal.setup()
            await journal.init()
            results = await journal.run()
        statements = journal.dump(table="orders")
        ```

    Args:
        client: Database client (connected by `open()` / `async with`)
        catalog: Schema catalog over the same client
        config: Validated project configuration
        root: Directory relative journal paths are resolved against
    """

    def __init__(
        self,
        client: DatabaseClient,
        catalog: SchemaCatalog,
        config: ProjectConfig,
        root: Optional[Path] = None,
    ):
        self.client = client
        self.catalog = catalog
        self.config = config
        self.columns = config.columns
        self.store = WatermarkStore(client, config.journal.table)
        self.log = JournalLog(config.journal.resolve_path(root))
        self.orchestrator = JournalOrchestrator(
            client,
            catalog,
            self.store,
            self.log,
            self.columns,
            concurrency=config.options.concurrency,
        )
        self.logger = get_logger("dbjournal.service")

    @classmethod
    def from_config(cls, config: ProjectConfig, root: Optional[Path] = None) -> "DbJournal":
        client, catalog = create_client(config.connection)
        return cls(client, catalog, config, root=root)

    async def open(self) -> None:
        await self.client.connect()

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "DbJournal":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def setup(self) -> bool:
        """Create the watermark table. Returns False if it already existed."""
        return await self.store.setup()

    async def eligible_tables(self) -> List[str]:
        """Tables having a created or updated column, the watermark table excluded."""
        tables = []
        for table in await self.catalog.list_tables():
            if table == self.store.table_name:
                continue
            schema = await self.catalog.describe(table)
            if schema.has_column(self.columns.created_at) or schema.has_column(
                self.columns.updated_at
            ):
                tables.append(table)
        return tables

    async def init(
        self, start_time: Optional[datetime] = None, force_reset: bool = False
    ) -> List[InitResult]:
        """
        Create a watermark for every eligible table that has none.

        With `force_reset`, existing watermarks are moved to the start time
        as well. Without a start time the database's current time is used.

        Raises:
            WatermarkTableMissingError: If `setup` has not been run
            IllegalIdentifierError: If an eligible table name is reserved
        """
        await self.store.ensure_installed()
        self.catalog.refresh()
        tables = await self.eligible_tables()
        for table in tables:
            validate_identifier(table, table)

        start = start_time or await self.client.current_timestamp()
        existing = {wm.table_name for wm in await self.store.list_all()}

        results: List[InitResult] = []
        async with self.client.transaction():
            for table in tables:
                if table not in existing:
                    await self.store.create(table, start)
                    action = InitAction.CREATED
                elif force_reset:
                    await self.store.force_reset(table, start)
                    action = InitAction.RESET
                else:
                    action = InitAction.SKIPPED
                results.append(InitResult(table=table, action=action, start=start))

        created = sum(1 for r in results if r.action == InitAction.CREATED)
        self.logger.info(
            f"Initialized {created} of {len(tables)} eligible tables starting {start}"
        )
        return results

    async def run(self, time_override: Optional[datetime] = None) -> List[TableRunResult]:
        """Journal every watermarked table. See `JournalOrchestrator.run`."""
        return await self.orchestrator.run(time_override)

    def dump(
        self, table: Optional[str] = None, min_time: Bound = None, max_time: Bound = None
    ) -> List[str]:
        """
        Statements in the log, filtered by table and an inclusive time range.

        Pure read: no database access and no mutation.
        """
        return self.log.read(table, normalize_bound(min_time), normalize_bound(max_time))

    async def clean(self) -> Optional[Path]:
        """
        Remove every watermark and archive the log.

        Returns:
            Path of the archived log, or None if there was none
        """
        await self.store.ensure_installed()
        async with self.client.transaction():
            await self.store.truncate_all()
        return self.log.archive()

    async def uninstall(self) -> None:
        """Drop the watermark table and delete the log with its archives."""
        await self.store.drop()
        self.log.remove()

    async def time(self) -> datetime:
        return await self.client.current_timestamp()

    async def schema(self) -> Dict[str, Dict[str, str]]:
        """Table -> column -> declared type for every table in the database."""
        self.catalog.refresh()
        result: Dict[str, Dict[str, str]] = {}
        for table in await self.catalog.list_tables():
            columns = await self.catalog.columns_of(table)
            result[table] = {c.name: c.declared_type or c.type.value for c in columns}
        return result

    async def status(self) -> pl.DataFrame:
        """The watermark table as a DataFrame."""
        await self.store.ensure_installed()
        watermarks = await self.store.list_all()
        return pl.DataFrame(
            {
                "table": [wm.table_name for wm in watermarks],
                "last_journal": [wm.last_journal for wm in watermarks],
                "execution_time_ms": [wm.execution_time for wm in watermarks],
            },
            schema={
                "table": pl.Utf8,
                "last_journal": pl.Datetime("us"),
                "execution_time_ms": pl.Float64,
            },
        )
