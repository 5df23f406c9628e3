"""
Orchestrator drives one journal run across every watermarked table.

Per table the run moves through:

    window computed -> rows scanned -> entries encoded -> log appended
    -> watermark committed

Failures are table-scoped: a failing table keeps its watermark, its error is
recorded in its result, and the other tables carry on.

Crash consistency:
    The log append always happens before the watermark commit. If the process
    dies between the two, the watermark still points at the old lower bound,
    so the next run scans the same window again and appends the same entries
    a second time. Changes are never lost, but the log may hold duplicate
    statements for one window. Consumers replaying the log must treat INSERTs
    with conflict-ignore semantics and re-apply UPDATEs, both of which are
    idempotent. Cancelling a run never commits a watermark.
"""
import asyncio
import time
from datetime import datetime
from typing import Dict, List, Optional

from dbjournal.connections.base import DatabaseClient, SchemaCatalog
from dbjournal.core.configs import ColumnsConfig
from dbjournal.messages import get_logger
from dbjournal.messages.summary import Summary
from dbjournal.utility.exceptions import WindowError

from .codec import ValueCodec
from .encoder import RowEncoder
from .journal import JournalLog
from .models import ChangeWindow, TableRunResult, TableRunStatus, TableWatermark
from .scanner import ChangeScanner
from .watermark import WatermarkStore


class JournalOrchestrator:
    """
    Runs scan, encode, append and commit for each watermarked table.

    Tables run one after another unless `concurrency` is above one, in which
    case they run as asyncio tasks limited by a semaphore. Each table's
    sequence holds a per-table lock, and the watermark commit is conditional
    on the value read when the window was computed.

    Example:
        ```python
        orchestrator = JournalOrchestrator(
            client, catalog, store, JournalLog(path), ColumnsConfig()
        )
        results = await orchestrator.run()
        failed = [r for r in results if r.status == TableRunStatus.FAIL]
        ```
    """

    def __init__(
        self,
        client: DatabaseClient,
        catalog: SchemaCatalog,
        store: WatermarkStore,
        log: JournalLog,
        columns: ColumnsConfig,
        concurrency: int = 1,
    ):
        self.client = client
        self.catalog = catalog
        self.store = store
        self.log = log
        self.columns = columns
        self.concurrency = max(1, concurrency)
        self.codec = ValueCodec(client.quote)
        self.scanner = ChangeScanner(client, columns)
        self.logger = get_logger("dbjournal.orchestrator")
        self.summary = Summary(logger=self.logger)
        self._table_locks: Dict[str, asyncio.Lock] = {}

    async def run(self, time_override: Optional[datetime] = None) -> List[TableRunResult]:
        """
        Journal every watermarked table up to `time_override` or the
        database's current time.

        Returns:
            One result per watermarked table, in watermark table order

        Raises:
            WatermarkTableMissingError: If `setup` has not been run
            DatabaseError: If the watermarks or the clock cannot be read
        """
        await self.store.ensure_installed()
        watermarks = await self.store.list_all()
        if not watermarks:
            self.logger.warning("No watermarked tables. Run 'dbjournal init' first.")
            return []

        # One clock reading for the whole run keeps the tables consistent
        upper = time_override or await self.client.current_timestamp()
        self.catalog.refresh()

        run_start = time.perf_counter()
        total = len(watermarks)
        self.logger.info(
            f"Journaling {total} {'table' if total == 1 else 'tables'} up to "
            f"{upper} with concurrency {self.concurrency}"
        )

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [
            asyncio.create_task(
                self._run_table_with_semaphore(wm, upper, i, total, semaphore),
                name=f"journal_{wm.table_name}",
            )
            for i, wm in enumerate(watermarks, 1)
        ]
        results = list(await asyncio.gather(*tasks))

        self.summary.generate_summary(results, time.perf_counter() - run_start)
        return results

    async def _run_table_with_semaphore(
        self,
        watermark: TableWatermark,
        upper: datetime,
        table_num: int,
        total_tables: int,
        semaphore: asyncio.Semaphore,
    ) -> TableRunResult:
        async with semaphore:
            return await self.run_table(watermark.table_name, upper, table_num, total_tables)

    async def run_table(
        self, table: str, upper: datetime, table_num: int = 1, total_tables: int = 1
    ) -> TableRunResult:
        """Journal one table. Never raises for table-scoped failures."""
        logger = get_logger(f"dbjournal.table.{table}")
        lock = self._table_locks.setdefault(table, asyncio.Lock())
        prefix = f"[{table_num} of {total_tables}]"

        async with lock:
            started = time.perf_counter()
            result = TableRunResult(table=table, status=TableRunStatus.PASS, upper=upper)
            try:
                # Re-read under the lock so a second run in this process sees
                # the first one's commit
                watermark = await self.store.get(table)
                if watermark is None:
                    result.status = TableRunStatus.SKIP
                    logger.warning(f"{prefix} SKIPPED .... (watermark removed)")
                    return result

                lower = watermark.last_journal
                result.lower = lower
                if upper == lower:
                    result.status = TableRunStatus.SKIP
                    logger.warning(f"{prefix} SKIPPED .... (already journaled to {upper})")
                    return result
                if upper < lower:
                    raise WindowError(
                        f"Time {upper} is before the watermark {lower} of '{table}'",
                        table=table,
                        watermark=str(lower),
                        requested=str(upper),
                    )
                window = ChangeWindow(lower=lower, upper=upper)

                schema = await self.catalog.describe(table)
                encoder = RowEncoder(
                    schema,
                    self.codec,
                    self.columns,
                    self.client.quote_identifier,
                    normalize_timestamp=self.client.normalize_timestamp,
                )
                changes = await self.scanner.scan(schema, window)
                entries, suppressed = encoder.encode_changes(changes)

                await self.log.append(table, entries)

                duration_ms = (time.perf_counter() - started) * 1000
                await self.store.commit(table, upper, duration_ms, expected=lower)

                result.inserts = changes.inserts.height
                result.updates = changes.updates.height
                result.suppressed = suppressed
                result.entries = len(entries)
                result.duration_ms = duration_ms
                logger.debug(
                    logger.ENTRIES_TEMPLATE.format(
                        len(entries), duration_ms, result.inserts, result.updates
                    )
                )
                logger.info(
                    f"{prefix} FINISHED in {duration_ms / 1000:.2f}s "
                    f"({len(entries):,} entries, {suppressed:,} suppressed)",
                    color_prefix="OK",
                )
            except Exception as e:
                result.status = TableRunStatus.FAIL
                result.error = str(e)
                result.exception = e
                result.duration_ms = (time.perf_counter() - started) * 1000
                logger.error(f"{prefix} FAILED .... {type(e).__name__}: {str(e)}")
            return result
