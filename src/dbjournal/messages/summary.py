"""
Run summaries - what happened to every table at a glance.
"""
from typing import List, Optional

from dbjournal.core.models import TableRunResult, TableRunStatus
from dbjournal.messages.logger import JournalLogger


class Summary:
    """Logs a summary of one journal run."""

    def __init__(self, logger: Optional[JournalLogger] = None):
        self.logger = logger or JournalLogger("dbjournal.summary")

    def generate_summary(
        self, results: List[TableRunResult], elapsed_time: float = 0.0
    ) -> None:
        """
        Generate and log execution summary.

        Args:
            results: One result per watermarked table
            elapsed_time: Wall-clock duration of the whole run in seconds
        """
        if not results:
            return

        passed = sum(1 for r in results if r.status == TableRunStatus.PASS)
        failed = sum(1 for r in results if r.status == TableRunStatus.FAIL)
        skipped = sum(1 for r in results if r.status == TableRunStatus.SKIP)
        total_entries = sum(r.entries for r in results)
        total_suppressed = sum(r.suppressed for r in results)

        minutes = int(elapsed_time // 60)
        seconds = elapsed_time % 60
        if minutes > 0:
            time_str = (
                f"{minutes} minute{'s' if minutes != 1 else ''} "
                f"and {seconds:.2f} seconds"
            )
        else:
            time_str = f"{seconds:.2f} seconds"

        self.logger.info("")
        table_word = "table" if len(results) == 1 else "tables"
        self.logger.info(f"Finished journaling {len(results)} {table_word} in {time_str}.")

        if failed == 0:
            self.logger.info("Completed successfully", color_prefix="OK")
        else:
            self.logger.error("Completed with errors")

        if failed == 0 and skipped == 0:
            self.logger.info(f"{passed} {'table' if passed == 1 else 'tables'} passed.")
        else:
            parts = []
            if passed > 0:
                parts.append(f"{passed} passed")
            if failed > 0:
                parts.append(f"{failed} failed")
            if skipped > 0:
                parts.append(f"{skipped} skipped")
            self.logger.info(f"{', '.join(parts)} ({len(results)} total).")

        if total_entries > 0:
            self.logger.info(f"Total entries journaled: {total_entries:,}")
        if total_suppressed > 0:
            self.logger.info(
                f"Updates already covered by inserts: {total_suppressed:,}"
            )

        self.logger.info("")

        if failed > 0:
            self.logger.error("Failed tables:")
            for result in results:
                if result.status == TableRunStatus.FAIL:
                    self.logger.error(f"  {result.table}: {result.error}")
