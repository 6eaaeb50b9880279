"""Validator config composition and evaluation.

A validator config is a comma-separated rule list (`required,max=10`);
alternatives inside one rule are joined with `|` (`eq=false|eq=true`).
Configs are composed once per field at descriptor build from the `validate`
metadata and the column metadata, and evaluated before every write.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from .columns import ColumnKind
from .descriptors import Field
from .errors import ValidationFailed

SEPARATOR = ","
ALTERNATIVE = "|"
SKIP = "-"
OMITEMPTY = "omitempty"
REQUIRED = "required"
DIVE = "dive"

_NUMERIC_TEXT = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ONEOF_ITEM = re.compile(r"'([^']*)'|(\S+)")


@dataclass(frozen=True)
class Rule:
    """One parsed rule: `tag` or `tag=param`."""

    tag: str
    param: str = ""

    def __str__(self) -> str:
        return f"{self.tag}={self.param}" if self.param else self.tag


def parse_config(config: str) -> list[tuple[Rule, ...]]:
    """Parse a validator config into rules; each entry holds its `|` alternatives.

    Raises:
        ValueError: If a rule tag is unknown.
    """

    groups: list[tuple[Rule, ...]] = []
    for part in _split(config):
        alternatives = []
        for raw in part.split(ALTERNATIVE):
            tag, _, param = raw.strip().partition("=")
            tag = tag.strip()
            if tag not in _CHECKS and tag not in {OMITEMPTY, DIVE}:
                raise ValueError(f"Unknown validation rule {tag!r} in {config!r}.")
            alternatives.append(Rule(tag, param.strip()))
        groups.append(tuple(alternatives))
    return groups


def is_skipped(config: str) -> bool:
    return config.strip() == SKIP


def merge_config(config: str, additions: Iterable[str]) -> str:
    """Append `additions` whose rule tags `config` does not contain yet.

    `omitempty` is moved to the front. `required` and `omitempty` exclude
    each other; the one already present wins.
    """

    parts = _split(config)
    present = {_tag(alt) for part in parts for alt in part.split(ALTERNATIVE)}
    for addition in additions:
        tags = {_tag(alt) for alt in addition.split(ALTERNATIVE)}
        if tags & present:
            continue
        if REQUIRED in tags and OMITEMPTY in present:
            continue
        if OMITEMPTY in tags and REQUIRED in present:
            continue
        parts.append(addition)
        present |= tags
    parts.sort(key=lambda part: 0 if _tag(part) == OMITEMPTY else 1)
    return SEPARATOR.join(parts)


def compose_config(field: Field, *, belongs_to_key: bool = False) -> str:
    """Build the composite config of one field from its column metadata.

    Args:
        field: Field with merged column metadata.
        belongs_to_key: The field is the foreign key of a belongsTo relation;
            its value is only known after the related row is written.

    Returns:
        The user config extended with the database-derived rules.

    Raises:
        ValueError: If the user config holds an unknown rule.
    """

    config = field.validate
    if is_skipped(config):
        return config
    parse_config(config)
    if field.info is None or field.custom or field.is_time_field:
        return config

    additions: list[str] = []
    optional = belongs_to_key
    numeric = False
    if belongs_to_key:
        additions.append(OMITEMPTY)

    column_type = field.info.type
    kind = column_type.kind if column_type is not None else None
    if kind is ColumnKind.BOOL:
        optional = True
        additions.append("eq=false|eq=true")
    elif kind is ColumnKind.INTEGER:
        numeric = True
        additions.append("numeric")
        if column_type.min is not None:
            additions.append(f"min={column_type.min}")
        if column_type.max is not None:
            additions.append(f"max={column_type.max}")
    elif kind is ColumnKind.FLOAT:
        numeric = True
        additions.append("numeric")
    elif kind in (ColumnKind.TEXT, ColumnKind.TEXTAREA):
        if column_type.size:
            additions.append(f"max={column_type.size}")
    elif kind is ColumnKind.SELECT and column_type.items:
        additions.append("oneof=" + " ".join(_quote_item(item) for item in column_type.items))

    mandatory = not field.info.nullable and not field.autoincrement and not optional
    if mandatory and not numeric:
        additions.append(REQUIRED)
    elif not mandatory and (config or additions):
        additions.append(OMITEMPTY)
    return merge_config(config, additions)


def validate_value(entity: str, name: str, config: str, value: Any) -> None:
    """Evaluate `config` against `value`.

    Raises:
        ValidationFailed: On the first rule the value violates.
    """

    if not config or is_skipped(config):
        return
    _evaluate(entity, name, parse_config(config), value)


def _evaluate(entity: str, name: str, groups: list[tuple[Rule, ...]], value: Any) -> None:
    if any(group[0].tag == OMITEMPTY for group in groups) and is_empty(value):
        return
    for index, group in enumerate(groups):
        head = group[0]
        if head.tag == OMITEMPTY:
            continue
        if head.tag == DIVE:
            rest = groups[index + 1 :]
            for position, item in enumerate(value or ()):
                _evaluate(entity, f"{name}[{position}]", rest, item)
            return
        if any(_CHECKS[rule.tag](value, rule.param) for rule in group):
            continue
        if len(group) == 1:
            raise ValidationFailed(entity, name, head.tag, head.param, value)
        raise ValidationFailed(
            entity, name, ALTERNATIVE.join(str(rule) for rule in group), "", value
        )


def is_empty(value: Any) -> bool:
    """`None`, empty text and empty collections count as empty."""

    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _split(config: str) -> list[str]:
    return [part.strip() for part in config.split(SEPARATOR) if part.strip()]


def _tag(part: str) -> str:
    return part.strip().partition("=")[0].strip()


def _quote_item(item: str) -> str:
    return f"'{item}'" if " " in item or not item else item


def _scalar(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _text(value: Any) -> str:
    value = _scalar(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _number(text: str) -> Any:
    try:
        return int(text)
    except ValueError:
        return Decimal(text)


def _as_number(value: Any) -> Optional[Any]:
    value = _scalar(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str) and _NUMERIC_TEXT.match(value.strip()):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def _measure(value: Any) -> Optional[Any]:
    """Length for text and collections, the value itself for numbers."""

    value = _scalar(value)
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (int, Decimal)):
        return value
    return None


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, str], bool]:
    def check(value: Any, param: str) -> bool:
        measured = _measure(value)
        if measured is None:
            return value is None
        return op(measured, _number(param))

    return check


def _required(value: Any, _: str) -> bool:
    return not is_empty(value)


def _numeric(value: Any, _: str) -> bool:
    return _as_number(value) is not None


def _oneof(value: Any, param: str) -> bool:
    items = [quoted if quoted or not bare else bare for quoted, bare in _ONEOF_ITEM.findall(param)]
    return _text(value) in items


def _email(value: Any, _: str) -> bool:
    return isinstance(value, str) and _EMAIL.match(value) is not None


_CHECKS: dict[str, Callable[[Any, str], bool]] = {
    REQUIRED: _required,
    "numeric": _numeric,
    "min": _compare(lambda a, b: a >= b),
    "max": _compare(lambda a, b: a <= b),
    "len": _compare(lambda a, b: a == b),
    "gt": _compare(lambda a, b: a > b),
    "gte": _compare(lambda a, b: a >= b),
    "lt": _compare(lambda a, b: a < b),
    "lte": _compare(lambda a, b: a <= b),
    "eq": lambda value, param: _text(value) == param,
    "ne": lambda value, param: _text(value) != param,
    "oneof": _oneof,
    "email": _email,
}
