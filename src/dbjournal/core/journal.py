"""
Append-only journal log of reconstructed SQL statements.

One entry per physical line:

    /*<timestamp>|<table>|<column>|<pk1>^<pk2>|<v1>^<v2>*/ <statement>

Header fields escape `\\`, `|`, `^` and `/` with a backslash, so neither a
separator nor the `*/` terminator can appear inside a field. The whole line
then escapes backslash, newline and carriage return, so a statement with
multi-line text values still occupies exactly one line.

Lines are only ever appended. `archive()` and `remove()` are the only
operations that move or delete the file.
"""
import asyncio
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from dbjournal.messages import get_logger
from dbjournal.utility.exceptions import JournalFormatError, JournalWriteError

from .models import JournalEntry

FIELD_SEPARATOR = "|"
KEY_SEPARATOR = "^"
HEADER_FIELD_COUNT = 5

_LINE_PATTERN = re.compile(r"^/\*(?P<header>.*?)\*/ (?P<statement>.*)$", re.DOTALL)
_HEADER_SPECIALS = ("\\", FIELD_SEPARATOR, KEY_SEPARATOR, "/")
_LINE_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r"}
_LINE_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r"}


def escape_field(value: str) -> str:
    return "".join("\\" + ch if ch in _HEADER_SPECIALS else ch for ch in value)


def escape_line(text: str) -> str:
    return "".join(_LINE_ESCAPES.get(ch, ch) for ch in text)


def unescape_line(text: str) -> str:
    out = []
    chars = iter(text)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_LINE_UNESCAPES.get(nxt, "\\" + nxt))
        else:
            out.append(ch)
    return "".join(out)


def split_header(header: str) -> List[List[str]]:
    """Split a header into fields, each a list of `^`-separated segments."""
    fields: List[List[str]] = [[]]
    current: List[str] = []
    chars = iter(header)
    for ch in chars:
        if ch == "\\":
            current.append(next(chars, ""))
        elif ch == FIELD_SEPARATOR:
            fields[-1].append("".join(current))
            fields.append([])
            current = []
        elif ch == KEY_SEPARATOR:
            fields[-1].append("".join(current))
            current = []
        else:
            current.append(ch)
    fields[-1].append("".join(current))
    return fields


def format_entry(entry: JournalEntry) -> str:
    """Render one entry as a log line, without the trailing newline."""
    header = FIELD_SEPARATOR.join(
        [
            escape_field(entry.operation_timestamp),
            escape_field(entry.table),
            escape_field(entry.timestamp_column),
            KEY_SEPARATOR.join(escape_field(c) for c in entry.primary_key_columns),
            KEY_SEPARATOR.join(escape_field(v) for v in entry.primary_key_values),
        ]
    )
    return escape_line(f"/*{header}*/ {entry.statement}")


def parse_line(line: str, line_number: int = 0) -> Optional[JournalEntry]:
    """
    Parse one log line. Blank lines return None.

    Raises:
        JournalFormatError: If the line is not a well-formed entry
    """
    stripped = line.rstrip("\r\n")
    if not stripped.strip():
        return None

    match = _LINE_PATTERN.match(unescape_line(stripped))
    if match is None:
        raise JournalFormatError(
            f"Malformed journal line {line_number}: {stripped}",
            line_number=line_number,
            line=stripped,
        )

    fields = split_header(match.group("header"))
    scalars = fields[:3]
    if len(fields) != HEADER_FIELD_COUNT or any(len(f) != 1 for f in scalars):
        raise JournalFormatError(
            f"Malformed journal header on line {line_number}: {stripped}",
            line_number=line_number,
            line=stripped,
        )

    key_columns = tuple(c for c in fields[3] if c)
    key_values = tuple(v for v in fields[4] if v)
    if len(key_columns) != len(key_values):
        raise JournalFormatError(
            f"Primary key columns and values differ in length on line "
            f"{line_number}: {stripped}",
            line_number=line_number,
            line=stripped,
        )

    return JournalEntry(
        operation_timestamp=scalars[0][0],
        table=scalars[1][0],
        timestamp_column=scalars[2][0],
        primary_key_columns=key_columns,
        primary_key_values=key_values,
        statement=match.group("statement"),
    )


class JournalLog:
    """
    The journal log file: writer and reader.

    Example:
        ```python
        log = JournalLog(Path("db_journal/journal.log"))
        await log.append("orders", entries)
        statements = log.read(table="orders", min_timestamp="2024-01-01 00:00:00")
        ```

    Args:
        path: Location of the log file; parent directories are created on
            first append
    """

    ARCHIVE_FORMAT = "%Y%m%d_%H%M%S"

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = get_logger("dbjournal.journal")
        self._write_lock = asyncio.Lock()

    async def append(self, table: str, entries: Sequence[JournalEntry]) -> int:
        """
        Append entries in order and flush them to disk.

        Returns:
            Number of lines written

        Raises:
            JournalWriteError: If the file cannot be written
        """
        if not entries:
            return 0
        for entry in entries:
            if entry.table != table:
                raise ValueError(
                    f"Entry for table '{entry.table}' appended as '{table}'"
                )

        payload = "".join(format_entry(entry) + "\n" for entry in entries)
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._append_bytes, payload.encode("utf-8"))
            except OSError as e:
                raise JournalWriteError(
                    f"Failed to append {len(entries)} entries for '{table}' "
                    f"to {self.path}: {str(e)}",
                    table=table,
                    path=str(self.path),
                ) from e

        self.logger.debug(f"Appended {len(entries)} entries for {table}")
        return len(entries)

    def _append_bytes(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        flags = os.O_WRONLY | os.O_APPEND | os.O_CREAT | getattr(os, "O_BINARY", 0)
        fd = os.open(self.path, flags, 0o644)
        try:
            view = memoryview(data)
            while view:
                written = os.write(fd, view)
                view = view[written:]
            os.fsync(fd)
        finally:
            os.close(fd)

    def iter_entries(
        self,
        table: Optional[str] = None,
        min_timestamp: Optional[str] = None,
        max_timestamp: Optional[str] = None,
    ) -> Iterator[JournalEntry]:
        """
        Yield entries in file order, filtered by table and an inclusive,
        lexically compared timestamp range.

        Raises:
            JournalFormatError: On the first malformed line
        """
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8", newline="") as handle:
            for line_number, line in enumerate(handle, start=1):
                entry = parse_line(line, line_number)
                if entry is None:
                    continue
                if table is not None and entry.table != table:
                    continue
                if min_timestamp is not None and entry.operation_timestamp < min_timestamp:
                    continue
                if max_timestamp is not None and entry.operation_timestamp > max_timestamp:
                    continue
                yield entry

    def read(
        self,
        table: Optional[str] = None,
        min_timestamp: Optional[str] = None,
        max_timestamp: Optional[str] = None,
    ) -> List[str]:
        """Statements of the matching entries, headers stripped."""
        return [
            entry.statement
            for entry in self.iter_entries(table, min_timestamp, max_timestamp)
        ]

    def archives(self) -> List[Path]:
        if not self.path.parent.exists():
            return []
        return sorted(self.path.parent.glob(f"{self.path.name}.*"))

    def archive(self) -> Optional[Path]:
        """
        Move the log aside with a timestamp suffix.

        Returns:
            The archive path, or None if there was no log to archive
        """
        if not self.path.exists():
            return None
        target = self.path.with_name(
            f"{self.path.name}.{datetime.now().strftime(self.ARCHIVE_FORMAT)}"
        )
        counter = 1
        while target.exists():
            target = self.path.with_name(
                f"{self.path.name}.{datetime.now().strftime(self.ARCHIVE_FORMAT)}"
                f"_{counter}"
            )
            counter += 1
        self.path.rename(target)
        self.logger.info(f"Archived journal log to {target}")
        return target

    def remove(self) -> None:
        """Delete the log and its archives, then the directory if it is empty."""
        for path in [self.path, *self.archives()]:
            if path.exists():
                path.unlink()
        directory = self.path.parent
        if directory.exists() and not any(directory.iterdir()):
            directory.rmdir()
        self.logger.info(f"Removed journal log {self.path}")
