"""Column metadata reported by the database information port."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ColumnKind(str, Enum):
    """Database-independent column type kinds."""

    INTEGER = "Integer"
    FLOAT = "Float"
    BOOL = "Bool"
    TEXT = "Text"
    TEXTAREA = "TextArea"
    TIME = "Time"
    DATE = "Date"
    DATETIME = "DateTime"
    SELECT = "Select"
    CUSTOM = "Custom"


@dataclass(frozen=True)
class ColumnType:
    """Normalized column type with the kind-specific limits.

    Attributes:
        kind: Type family of the column.
        raw: Type text as reported by the database.
        min: Lowest accepted value for integer kinds.
        max: Highest accepted value for integer kinds.
        size: Maximum character length for text kinds.
        items: Allowed values for enum (`Select`) columns.
    """

    kind: ColumnKind
    raw: str = ""
    min: Optional[int] = None
    max: Optional[int] = None
    size: Optional[int] = None
    items: tuple[str, ...] = ()


@dataclass(frozen=True)
class Column:
    """One described database column."""

    table: str
    name: str
    position: int = 0
    nullable: bool = True
    primary_key: bool = False
    type: Optional[ColumnType] = None
    default: Any = None
    length: Optional[int] = None
    autoincrement: bool = False


@dataclass(frozen=True)
class Reference:
    """Table and column at one end of a foreign key."""

    table: str
    column: str


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key: `primary` (the referencing side) points at `secondary`."""

    name: str
    primary: Reference
    secondary: Reference = field(default_factory=lambda: Reference("", ""))


_INTEGER_RANGES = {
    "TINYINT": (-128, 127, 255),
    "SMALLINT": (-32768, 32767, 65535),
    "INT2": (-32768, 32767, 65535),
    "SMALLSERIAL": (-32768, 32767, 65535),
    "MEDIUMINT": (-8388608, 8388607, 16777215),
    "INT": (-2147483648, 2147483647, 4294967295),
    "INT4": (-2147483648, 2147483647, 4294967295),
    "SERIAL": (-2147483648, 2147483647, 4294967295),
    "BIGINT": (-9223372036854775808, 9223372036854775807, 18446744073709551615),
    "INT8": (-9223372036854775808, 9223372036854775807, 18446744073709551615),
    "BIGSERIAL": (-9223372036854775808, 9223372036854775807, 18446744073709551615),
}

_TEXTAREA_SIZES = {
    "TINYTEXT": 255,
    "TEXT": 65535,
    "MEDIUMTEXT": 16777215,
    "LONGTEXT": 4294967295,
}

_FLOAT_TYPES = {"REAL", "FLOAT", "FLOAT4", "FLOAT8", "DOUBLE", "DECIMAL", "NUMERIC", "DEC"}
_TEXT_TYPES = {"VARCHAR", "CHAR", "CHARACTER", "NVARCHAR", "NCHAR", "VARCHAR2", "CLOB", "STRING"}


def convert_column_type(
    raw: Any,
    length: Optional[int] = None,
    *,
    wide_integer: bool = False,
) -> Optional[ColumnType]:
    """Map a raw database type onto a `ColumnType`.

    Args:
        raw: Type text as reported by the database.
        length: Character length reported separately from the type text.
        wide_integer: Treat plain `INTEGER` as 64-bit (SQLite storage class).

    Returns:
        The normalized type, or `None` for types without a kind (blobs, json).
    """

    text = str(raw or "").strip()
    if not text:
        return None

    upper = text.upper()
    tokens = [token for token in re.split(r"[\s(),]+", upper) if token]
    first = tokens[0]
    unsigned = "UNSIGNED" in tokens
    declared_size = _declared_size(text)

    if first in {"BOOL", "BOOLEAN"} or upper.startswith("TINYINT(1)") or upper == "BIT(1)":
        return ColumnType(ColumnKind.BOOL, raw=text)

    if first in {"ENUM", "SET"}:
        return ColumnType(ColumnKind.SELECT, raw=text, items=tuple(_enum_items(text)))

    if first == "INTEGER":
        first = "BIGINT" if wide_integer else "INT"
    if first in _INTEGER_RANGES:
        low, high, unsigned_high = _INTEGER_RANGES[first]
        if unsigned:
            return ColumnType(ColumnKind.INTEGER, raw=text, min=0, max=unsigned_high)
        return ColumnType(ColumnKind.INTEGER, raw=text, min=low, max=high)

    if first in _FLOAT_TYPES or (first == "DOUBLE" and "PRECISION" in tokens):
        return ColumnType(ColumnKind.FLOAT, raw=text)

    if first in _TEXTAREA_SIZES:
        return ColumnType(ColumnKind.TEXTAREA, raw=text, size=_TEXTAREA_SIZES[first])

    if first in _TEXT_TYPES or upper.startswith("CHARACTER VARYING"):
        size = length if length is not None else declared_size
        return ColumnType(ColumnKind.TEXT, raw=text, size=size)

    if first == "TIME" and "STAMP" not in upper:
        return ColumnType(ColumnKind.TIME, raw=text)
    if first == "DATE":
        return ColumnType(ColumnKind.DATE, raw=text)
    if first in {"DATETIME", "TIMESTAMP", "TIMESTAMPTZ"}:
        return ColumnType(ColumnKind.DATETIME, raw=text)

    return None


def _declared_size(text: str) -> Optional[int]:
    match = re.search(r"\((\d+)\)", text)
    if match is None:
        return None
    return int(match.group(1))


def _enum_items(text: str) -> list[str]:
    return re.findall(r"'((?:[^']|'')*)'", text)
