"""
Mapping of declared SQL column types to normalized column types.
"""
import re

from dbjournal.core.models import ColumnType

# Exact base type names (lower-case, without length/precision)
_KNOWN_TYPES = {
    "bit": ColumnType.BOOLEAN,
    "bool": ColumnType.BOOLEAN,
    "boolean": ColumnType.BOOLEAN,
    "tinyint": ColumnType.INTEGER,
    "smallint": ColumnType.INTEGER,
    "mediumint": ColumnType.INTEGER,
    "int": ColumnType.INTEGER,
    "integer": ColumnType.INTEGER,
    "bigint": ColumnType.INTEGER,
    "decimal": ColumnType.DECIMAL,
    "numeric": ColumnType.DECIMAL,
    "money": ColumnType.DECIMAL,
    "smallmoney": ColumnType.DECIMAL,
    "float": ColumnType.FLOAT,
    "real": ColumnType.FLOAT,
    "double": ColumnType.FLOAT,
    "double precision": ColumnType.FLOAT,
    "date": ColumnType.DATE,
    "time": ColumnType.TIME,
    "datetime": ColumnType.DATETIME,
    "datetime2": ColumnType.DATETIME,
    "smalldatetime": ColumnType.DATETIME,
    "datetimeoffset": ColumnType.DATETIME,
    "timestamp": ColumnType.DATETIME,
    "char": ColumnType.TEXT,
    "nchar": ColumnType.TEXT,
    "varchar": ColumnType.TEXT,
    "nvarchar": ColumnType.TEXT,
    "text": ColumnType.TEXT,
    "ntext": ColumnType.TEXT,
    "clob": ColumnType.TEXT,
    "uniqueidentifier": ColumnType.TEXT,
    "xml": ColumnType.TEXT,
    "json": ColumnType.TEXT,
    "enum": ColumnType.TEXT,
    "binary": ColumnType.BINARY,
    "varbinary": ColumnType.BINARY,
    "image": ColumnType.BINARY,
    "blob": ColumnType.BINARY,
    "rowversion": ColumnType.BINARY,
}

# SQL Server's `timestamp` is a row version, not a point in time
_MSSQL_OVERRIDES = {
    "timestamp": ColumnType.BINARY,
}


def column_type_from_declared(declared: str, dialect: str = "sqlite") -> ColumnType:
    """
    Normalize a declared column type.

    Exact type names are looked up first; anything else falls back to
    SQLite's affinity rules (INT -> integer, CHAR/CLOB/TEXT -> text,
    BLOB -> binary, REAL/FLOA/DOUB -> float, otherwise decimal). An empty
    declaration is treated as text.

    Args:
        declared: Type as reported by the database (e.g. "VARCHAR(20)")
        dialect: "sqlite" or "mssql"

    Returns:
        Normalized ColumnType
    """
    base = re.sub(r"\(.*\)", "", declared or "").strip().lower()
    base = re.sub(r"\s+", " ", base)

    if dialect == "mssql" and base in _MSSQL_OVERRIDES:
        return _MSSQL_OVERRIDES[base]
    if base in _KNOWN_TYPES:
        return _KNOWN_TYPES[base]
    if not base:
        return ColumnType.TEXT

    upper = base.upper()
    if "INT" in upper:
        return ColumnType.INTEGER
    if "CHAR" in upper or "CLOB" in upper or "TEXT" in upper:
        return ColumnType.TEXT
    if "BLOB" in upper or "BINARY" in upper:
        return ColumnType.BINARY
    if "REAL" in upper or "FLOA" in upper or "DOUB" in upper:
        return ColumnType.FLOAT
    if "BOOL" in upper:
        return ColumnType.BOOLEAN
    if "DATETIME" in upper or "TIMESTAMP" in upper:
        return ColumnType.DATETIME
    if "DATE" in upper:
        return ColumnType.DATE
    if "TIME" in upper:
        return ColumnType.TIME
    return ColumnType.DECIMAL
