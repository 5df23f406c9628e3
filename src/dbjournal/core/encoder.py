"""
Row encoder: candidate rows to journal entries.

Each candidate row becomes a full INSERT (created query) or UPDATE (updated
query) statement built from literal values, so the log can be replayed
without the original schema. Within one table's run an UPDATE whose primary
key already produced an INSERT is suppressed: the INSERT holds the row's
current state.
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from dbjournal.core.configs import RESERVED_IDENTIFIER_SEQUENCES, ColumnsConfig
from dbjournal.utility.exceptions import (
    DuplicateInsertError,
    IllegalIdentifierError,
    MissingPrimaryKeyError,
    RowOutsideWindowError,
)
from dbjournal.utility.timestamps import format_timestamp, parse_timestamp

from .codec import ValueCodec
from .models import ChangeSet, ChangeWindow, JournalEntry, OperationKind, TableSchema

PrimaryKey = Tuple[str, ...]


class InsertDedupSet:
    """Primary keys that produced an INSERT in the current run of one table."""

    def __init__(self, table: str):
        self.table = table
        self._keys: Set[PrimaryKey] = set()

    def add(self, key: PrimaryKey) -> None:
        """
        Raises:
            DuplicateInsertError: If the key already produced an INSERT
        """
        if key in self._keys:
            raise DuplicateInsertError(
                f"Row with primary key {list(key)} produced two INSERTs for "
                f"table '{self.table}' in one run",
                table=self.table,
                key=list(key),
            )
        self._keys.add(key)

    def __contains__(self, key: PrimaryKey) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


def validate_identifier(name: str, table: str) -> None:
    """
    Reject identifiers that would collide with the log header separators.

    Raises:
        IllegalIdentifierError: If the name contains a reserved sequence
    """
    for sequence in RESERVED_IDENTIFIER_SEQUENCES:
        if sequence in name:
            raise IllegalIdentifierError(
                f"Identifier '{name}' in table '{table}' contains reserved "
                f"sequence {sequence!r}",
                table=table,
                identifier=name,
            )


class RowEncoder:
    """
    Encodes the candidate rows of one table for one run.

    A new encoder (and with it a new dedup set) is created per table per run.

    Example:
        ```python
        encoder = RowEncoder(schema, ValueCodec(client.quote), columns,
                             client.quote_identifier)
        entries, suppressed = encoder.encode_changes(changeset)
        ```

    Raises:
        MissingPrimaryKeyError: If the table has an updated column but no
            primary key
        IllegalIdentifierError: If the table or a key column name contains a
            reserved separator
    """

    def __init__(
        self,
        schema: TableSchema,
        codec: ValueCodec,
        columns: ColumnsConfig,
        quote_identifier: Callable[[str], str],
        normalize_timestamp: Optional[Callable[[datetime], datetime]] = None,
    ):
        self.schema = schema
        self.codec = codec
        self.columns = columns
        self.quote_identifier = quote_identifier
        # Window checks use the precision the database compared at
        self.normalize_timestamp = normalize_timestamp or (lambda value: value)

        validate_identifier(schema.name, schema.name)
        for name in schema.primary_keys:
            validate_identifier(name, schema.name)

        if not schema.primary_keys and schema.has_column(columns.updated_at):
            raise MissingPrimaryKeyError(
                f"Table '{schema.name}' has a '{columns.updated_at}' column but "
                f"no primary key; updates cannot be journaled",
                table=schema.name,
            )

        # Tables without a key only have inserts, so nothing can be suppressed
        self.dedup: Optional[InsertDedupSet] = (
            InsertDedupSet(schema.name) if schema.primary_keys else None
        )

    def driving_column(self, kind: OperationKind) -> str:
        if kind is OperationKind.INSERT:
            return self.columns.created_at
        return self.columns.updated_at

    def encode(
        self, row: Dict, kind: OperationKind, window: ChangeWindow
    ) -> Optional[JournalEntry]:
        """
        Encode one row. Returns None when an UPDATE is suppressed.

        Raises:
            RowOutsideWindowError: If the driving timestamp is not in the window
            DuplicateInsertError: If the key already produced an INSERT
            UnsupportedColumnTypeError: If the table has a binary column
        """
        column = self.driving_column(kind)
        raw_timestamp = row.get(column)
        timestamp = self._check_window(raw_timestamp, column, window)

        values = {
            info.name: self.codec.encode(row.get(info.name), info, self.schema.name)
            for info in self.schema.columns
        }
        key = tuple(values[name] for name in self.schema.primary_keys)

        if kind is OperationKind.INSERT:
            if self.dedup is not None:
                self.dedup.add(key)
            statement = self._insert_statement(values)
        else:
            if self.dedup is not None and key in self.dedup:
                return None
            statement = self._update_statement(values)

        return JournalEntry(
            operation_timestamp=format_timestamp(timestamp),
            table=self.schema.name,
            timestamp_column=column,
            primary_key_columns=self.schema.primary_keys,
            primary_key_values=key,
            statement=statement,
        )

    def encode_changes(self, changes: ChangeSet) -> Tuple[List[JournalEntry], int]:
        """
        Encode every insert row, then every update row, in query order.

        Returns:
            The entries in append order and the number of suppressed updates
        """
        entries: List[JournalEntry] = []
        suppressed = 0
        for kind, frame in (
            (OperationKind.INSERT, changes.inserts),
            (OperationKind.UPDATE, changes.updates),
        ):
            for row in frame.iter_rows(named=True):
                entry = self.encode(row, kind, changes.window)
                if entry is None:
                    suppressed += 1
                else:
                    entries.append(entry)
        return entries, suppressed

    def _check_window(
        self, raw_timestamp, column: str, window: ChangeWindow
    ) -> datetime:
        """Parse the driving timestamp and check it lies in the window."""
        try:
            timestamp = parse_timestamp(raw_timestamp)
        except (TypeError, ValueError):
            timestamp = None
        normalize = self.normalize_timestamp
        if timestamp is None or not (
            normalize(window.lower) < normalize(timestamp) <= normalize(window.upper)
        ):
            raise RowOutsideWindowError(
                f"Row of '{self.schema.name}' has {column}={raw_timestamp!r} "
                f"outside window ({window.lower}, {window.upper}]",
                table=self.schema.name,
                column=column,
                value=raw_timestamp,
            )
        return timestamp

    def _insert_statement(self, values: Dict[str, str]) -> str:
        q = self.quote_identifier
        names = ", ".join(q(name) for name in values)
        literals = ", ".join(values.values())
        return f"INSERT INTO {q(self.schema.name)} ({names}) VALUES ({literals});"

    def _update_statement(self, values: Dict[str, str]) -> str:
        q = self.quote_identifier
        keys = self.schema.primary_keys
        # Key-only tables still need a non-empty SET list
        settable = [name for name in values if name not in keys] or list(values)
        assignments = ", ".join(f"{q(name)} = {values[name]}" for name in settable)
        condition = " AND ".join(f"{q(name)} = {values[name]}" for name in keys)
        return f"UPDATE {q(self.schema.name)} SET {assignments} WHERE {condition};"
