"""
Value codec: raw column values to SQL literals.

The codec is deterministic and side-effect free. The only thing it borrows
from the database is the string escaping primitive, so the same value and
column always produce the same literal for a given dialect.
"""
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Optional

from dbjournal.utility.exceptions import UnsupportedColumnTypeError
from dbjournal.utility.timestamps import format_timestamp

from .models import ColumnInfo, ColumnType

_INTEGER_TEXT = re.compile(r"^[+-]?\d+$")


class ValueCodec:
    """
    Converts a column value plus its declared type into a SQL literal.

    Rules:
    - NULL -> `NULL` (unquoted)
    - integer and boolean columns -> bare literals (booleans as 1/0)
    - every other type (text, decimal, float, date/time) -> escaped and
      single-quoted through the client's `quote` primitive
    - binary columns -> UnsupportedColumnTypeError naming the column

    Example:
        ```python
        codec = ValueCodec(client.quote)
        codec.encode("O'Brien", column)  # "'O''Brien'"
        ```
    """

    NULL = "NULL"

    def __init__(self, quote: Callable[[str], str]):
        self._quote = quote

    def encode(self, value: Any, column: ColumnInfo, table: Optional[str] = None) -> str:
        """
        Render a value as a SQL literal.

        Raises:
            UnsupportedColumnTypeError: If the column is binary/LOB
        """
        if column.type.is_binary:
            where = f"{table}.{column.name}" if table else column.name
            raise UnsupportedColumnTypeError(
                f"Column '{where}' has binary type '{column.declared_type}'; "
                f"binary/LOB columns cannot be journaled",
                table=table,
                column=column.name,
            )

        if value is None:
            return self.NULL

        if column.type is ColumnType.BOOLEAN:
            bare = self._bare_boolean(value)
            if bare is not None:
                return bare
        elif column.type is ColumnType.INTEGER:
            bare = self._bare_integer(value)
            if bare is not None:
                return bare

        return self._quote(self.to_text(value))

    @staticmethod
    def to_text(value: Any) -> Optional[str]:
        """Plain text form of a value, before any quoting."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return format_timestamp(value.replace(tzinfo=None))
        if isinstance(value, (date, time)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return format(value, "f")
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return str(value)

    @staticmethod
    def _bare_integer(value: Any) -> Optional[str]:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, Decimal) and value == value.to_integral_value():
            return str(int(value))
        if isinstance(value, str) and _INTEGER_TEXT.match(value.strip()):
            return str(int(value.strip()))
        # Not integral (possible with SQLite's flexible typing): quote it
        return None

    @staticmethod
    def _bare_boolean(value: Any) -> Optional[str]:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, int) and value in (0, 1):
            return str(value)
        if isinstance(value, str) and value.strip().lower() in ("0", "1", "true", "false"):
            return "1" if value.strip().lower() in ("1", "true") else "0"
        return None
