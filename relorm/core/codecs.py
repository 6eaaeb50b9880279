"""Scalar conversion between attribute annotations and database values."""

from __future__ import annotations

import json
import types
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union, get_args, get_origin

CODEC_JSON = "json"
CODEC_ENUM = "enum"

SUPPORTED_CODECS = {CODEC_JSON, CODEC_ENUM}


def to_db(
    value: Any,
    annotation: Any,
    *,
    field_name: str,
    codec: Optional[str] = None,
    iso_temporal: bool = False,
) -> Any:
    """Serialize one attribute value for a write.

    Args:
        value: Attribute value.
        annotation: Resolved type annotation of the attribute.
        field_name: Attribute name used in error messages.
        codec: Explicit codec (`json` or `enum`) from field metadata.
        iso_temporal: Send dates and times as ISO strings (drivers without
            native temporal adapters).

    Returns:
        A value the DB-API driver accepts.

    Raises:
        ValueError: If an enum field receives a value outside its members.
    """

    if value is None:
        return None
    enum_type = _enum_type(annotation)
    if enum_type is not None or codec == CODEC_ENUM:
        if isinstance(value, Enum):
            return value.value
        return _enum_member(value, enum_type, field_name).value
    if _is_json_field(annotation, codec):
        if isinstance(value, (str, bytes, bytearray, memoryview)):
            return value
        return json.dumps(value)
    if isinstance(value, Decimal):
        return str(value)
    if iso_temporal and isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if iso_temporal and isinstance(value, (date, time)):
        return value.isoformat()
    return value


def from_db(
    value: Any,
    annotation: Any,
    *,
    field_name: str,
    codec: Optional[str] = None,
) -> Any:
    """Deserialize one database value into the attribute's annotated type."""

    if value is None:
        return None
    enum_type = _enum_type(annotation)
    if enum_type is not None or codec == CODEC_ENUM:
        return _enum_member(value, enum_type, field_name)
    if _is_json_field(annotation, codec):
        if isinstance(value, (dict, list)):
            return value
        return _json_load(value, field_name)

    base = unwrap_optional(annotation)
    parse = _TEXT_PARSERS.get(base)
    if parse is not None and isinstance(value, str):
        return parse(value)
    if base is bool and not isinstance(value, bool):
        return bool(value)
    if base is Decimal and not isinstance(value, Decimal):
        return Decimal(str(value))
    if base is int and isinstance(value, Decimal):
        return int(value)
    if base is float and isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        return float(value)
    return value


# Drivers without native temporal types hand back ISO text.
_TEXT_PARSERS = {
    datetime: datetime.fromisoformat,
    date: lambda text: date.fromisoformat(text[:10]),
    time: time.fromisoformat,
    int: int,
    float: float,
}


def validate_codec(field_name: str, codec: Any) -> Optional[str]:
    """Normalize the `codec` metadata of a field.

    Raises:
        TypeError: If the codec is not a string.
        ValueError: If the codec is unknown.
    """

    if codec is None:
        return None
    if not isinstance(codec, str):
        raise TypeError(
            f"Field {field_name!r} metadata codec must be a string, got {type(codec).__name__}."
        )
    normalized = codec.strip().lower()
    if normalized in SUPPORTED_CODECS:
        return normalized
    raise ValueError(
        f"Unsupported codec {codec!r} on field {field_name!r}. "
        "Supported codecs: 'json', 'enum'."
    )


def unwrap_optional(annotation: Any) -> Any:
    """Return `T` for `Optional[T]` / `T | None`, else the annotation itself."""

    origin = get_origin(annotation)
    if origin is None:
        return annotation

    if origin not in {Union, types.UnionType}:
        return annotation

    all_args = get_args(annotation)
    args = [arg for arg in all_args if arg is not type(None)]
    if len(args) == 1 and len(all_args) == 2:
        return args[0]
    return annotation


def list_item_type(annotation: Any) -> Any:
    """Return `T` for `list[T]` (optionally wrapped in Optional), else `None`."""

    base = unwrap_optional(annotation)
    if get_origin(base) in {list, tuple} and get_args(base):
        return get_args(base)[0]
    return None


def _enum_member(value: Any, enum_type: type[Enum] | None, field_name: str) -> Enum:
    """Resolve `value` to a member of `enum_type`, by value first, then by name."""

    if enum_type is None:
        raise ValueError(f"Field {field_name!r} uses enum codec but has no Enum annotation.")
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        member = enum_type.__members__.get(value) if isinstance(value, str) else None
        if member is None:
            raise ValueError(
                f"Value {value!r} of field {field_name!r} is not a member of {enum_type.__name__}."
            ) from None
        return member


def _json_load(value: Any, field_name: str) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = bytes(value).decode("utf-8")
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Field {field_name!r} holds invalid JSON: {value!r}.") from exc


def _enum_type(annotation: Any) -> type[Enum] | None:
    base = unwrap_optional(annotation)
    return base if isinstance(base, type) and issubclass(base, Enum) else None


def _is_json_field(annotation: Any, codec: str | None) -> bool:
    if codec is not None:
        return codec == CODEC_JSON
    base = unwrap_optional(annotation)
    return base in (dict, list) or get_origin(base) in (dict, list)
