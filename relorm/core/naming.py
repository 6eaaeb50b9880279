"""Naming conventions for tables, columns and keys."""

from __future__ import annotations

import re
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    """Convert `CamelCase` (or mixed) text to `snake_case`.

    `CarDriver` becomes `car_driver`, `HTTPServer` becomes `http_server`.
    """

    return _CAMEL_BOUNDARY.sub("_", name).replace("-", "_").lower()


def pluralize(name: str) -> str:
    """Return a naive English plural of the last word of `name`."""

    if name.endswith("y") and len(name) > 1 and name[-2] not in "aeiou":
        return f"{name[:-1]}ies"
    if name.endswith(("s", "x", "z", "ch", "sh")):
        return f"{name}es"
    return f"{name}s"


def default_table_name(cls: type) -> str:
    """Resolve table name from an entity class.

    Uses the `__table__` override when present, otherwise the snake-cased
    plural of the class name (`CarDriver` -> `car_drivers`).
    """

    name = getattr(cls, "__table__", None)
    if isinstance(name, str) and name:
        return name
    return pluralize(snake_case(cls.__name__))


def join_table_name(owner: type, related: type) -> str:
    """Default many-to-many join table of `owner` and `related`."""

    return pluralize(snake_case(owner.__name__ + related.__name__))


def namespaced_name(cls_or_instance: Any) -> str:
    """Process-unique name of an entity type: `module.QualName`."""

    cls = cls_or_instance if isinstance(cls_or_instance, type) else type(cls_or_instance)
    return f"{cls.__module__}.{cls.__qualname__}"
