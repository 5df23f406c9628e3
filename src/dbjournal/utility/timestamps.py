"""
Timestamp parsing and formatting shared by the journal components.

Everything the journal compares lexically (log headers, dump filters) is
rendered as `YYYY-MM-DD HH:MM:SS[.ffffff]`, which sorts the same way as the
instants it represents.
"""
from datetime import date, datetime, time, timezone
from typing import Any, Optional

DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DB_DATE_FORMAT = "%Y-%m-%d"


def parse_timestamp(value: Any) -> datetime:
    """
    Convert a database or user supplied timestamp into a naive datetime.
    Timezone-aware values become naive UTC.

    Accepts datetime, date, and ISO-like strings ("2024-01-01 10:00:00",
    "2024-01-01T10:00:00.123", "2024-01-01").

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f"Cannot interpret {value!r} as a timestamp")

    # Offsets are folded into UTC, the way the databases compare them
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Render a datetime as sortable text; microseconds only when present."""
    return value.isoformat(sep=" ")


def parse_option_timestamp(value: str) -> datetime:
    """
    Parse a command-line timestamp.

    Accepts the full datetime format, or a plain date which is taken as
    midnight of that day.

    Raises:
        ValueError: If neither format matches
    """
    for fmt in (DB_DATETIME_FORMAT, DB_DATE_FORMAT):
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    raise ValueError(
        f"'{value}' is not a valid time. Use {DB_DATETIME_FORMAT} or {DB_DATE_FORMAT}"
    )


def normalize_bound(value: Optional[Any]) -> Optional[str]:
    """Normalize a dump filter bound to the header timestamp text."""
    if value is None:
        return None
    if isinstance(value, str):
        return format_timestamp(parse_option_timestamp(value))
    return format_timestamp(parse_timestamp(value))
