"""Parsing of the `orm` and `validate` entries of dataclass field metadata.

The `orm` entry is either a string of `;`-separated `key[:value]` pairs
(`"column:car_brand;permission:r"`) or a mapping with the same keys. A key
without value (`custom`, `primary`, `-`) is a flag.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import Field, dataclass
from typing import Any, Optional

from .errors import InvalidTag

ORM_KEY = "orm"
VALIDATE_KEY = "validate"

TAG_SKIP = "-"
TAG_COLUMN = "column"
TAG_PERMISSION = "permission"
TAG_SELECT = "select"
TAG_CUSTOM = "custom"
TAG_PRIMARY = "primary"
TAG_RELATION = "relation"
TAG_FOREIGN_KEY = "fk"
TAG_ASSOCIATION_FOREIGN_KEY = "afk"
TAG_POLYMORPHIC = "polymorphic"
TAG_POLYMORPHIC_VALUE = "polymorphic_value"
TAG_JOIN_TABLE = "join_table"
TAG_JOIN_FOREIGN_KEY = "join_fk"
TAG_JOIN_ASSOCIATION_FOREIGN_KEY = "join_afk"


@dataclass(frozen=True)
class OrmTag:
    """Parsed `orm` metadata of one attribute."""

    entries: Mapping[str, str]

    def has(self, key: str) -> bool:
        return key in self.entries

    def get(self, key: str) -> Optional[str]:
        value = self.entries.get(key)
        return value if value else None

    @property
    def skip(self) -> bool:
        return TAG_SKIP in self.entries

    @property
    def custom(self) -> bool:
        return TAG_CUSTOM in self.entries

    @property
    def primary(self) -> bool:
        return TAG_PRIMARY in self.entries

    def permission(self) -> tuple[bool, bool]:
        """Return `(read, write)`; both default to True without a tag."""

        if TAG_PERMISSION not in self.entries:
            return True, True
        value = self.entries[TAG_PERMISSION]
        return "r" in value, "w" in value

    def foreign_keys(self) -> tuple[Optional[str], Optional[str]]:
        """Return `(fk, afk)` attribute names set by `fk`/`afk`.

        `fk` accepts the short form `fk:X` or the long form
        `fk:field=X,association_field=Y`; a separate `afk` key wins over the
        long form's association field.

        Raises:
            InvalidTag: If the long form holds an unknown entry.
        """

        raw = self.get(TAG_FOREIGN_KEY)
        fk: Optional[str] = None
        afk: Optional[str] = None
        if raw is not None:
            if "=" in raw:
                for part in raw.split(","):
                    key, _, value = part.partition("=")
                    key, value = key.strip(), value.strip()
                    if key == "field":
                        fk = value or None
                    elif key in {"association_field", "associationField"}:
                        afk = value or None
                    else:
                        raise InvalidTag(raw, f"unknown fk entry {key!r}.")
            else:
                fk = raw
        explicit_afk = self.get(TAG_ASSOCIATION_FOREIGN_KEY)
        return fk, explicit_afk or afk


def parse_tag(raw: Any) -> dict[str, str]:
    """Parse an `orm` tag value into a `{key: value}` mapping.

    Args:
        raw: Tag string, mapping, or `None`.

    Returns:
        Keys mapped to trimmed values (empty string for flags).

    Raises:
        TypeError: If `raw` is neither a string nor a mapping.
    """

    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        result = {}
        for key, value in raw.items():
            if value is True or value is None:
                result[str(key).strip()] = ""
            elif value is False:
                continue
            else:
                result[str(key).strip()] = str(value).strip()
        return result
    if not isinstance(raw, str):
        raise TypeError(f"orm tag must be a string or mapping, got {type(raw).__name__}.")

    result = {}
    for entry in raw.split(";"):
        entry = entry.strip()
        if not entry:
            continue
        key, _, value = entry.partition(":")
        result[key.strip()] = value.strip()
    return result


def orm_tag(field: Field[Any]) -> OrmTag:
    """Return the parsed `orm` metadata of a dataclass field."""

    return OrmTag(parse_tag(field.metadata.get(ORM_KEY)))


def validate_tag(field: Field[Any]) -> str:
    """Return the raw `validate` metadata of a dataclass field."""

    raw = field.metadata.get(VALIDATE_KEY, "")
    if not isinstance(raw, str):
        raise TypeError(
            f"Field {field.name!r} metadata validate must be a string, got {type(raw).__name__}."
        )
    return raw.strip()
