"""Base class of mapped entities and the lifecycle hooks they may define."""

from __future__ import annotations

from dataclasses import MISSING, dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, Optional

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"
TIME_FIELDS = (CREATED_AT, UPDATED_AT, DELETED_AT)

BEFORE_CREATE = "before_create"
AFTER_CREATE = "after_create"
BEFORE_UPDATE = "before_update"
AFTER_UPDATE = "after_update"
BEFORE_DELETE = "before_delete"
AFTER_DELETE = "after_delete"
AFTER_FIND = "after_find"
HOOK_NAMES = (
    BEFORE_CREATE,
    AFTER_CREATE,
    BEFORE_UPDATE,
    AFTER_UPDATE,
    BEFORE_DELETE,
    AFTER_DELETE,
    AFTER_FIND,
)


@dataclass
class Entity:
    """Marker base for mapped dataclasses.

    Contributes the keyword-only time attributes. They are only mapped when
    the table has the matching column.

    Class attributes:
        __table__: Table name override.
        __database__: Database (or schema) override.
        __strategy__: Loading strategy override.
    """

    __table__: ClassVar[Optional[str]] = None
    __database__: ClassVar[Optional[str]] = None
    __strategy__: ClassVar[Optional[str]] = None

    created_at: Optional[datetime] = field(default=None, kw_only=True)
    updated_at: Optional[datetime] = field(default=None, kw_only=True)
    deleted_at: Optional[datetime] = field(default=None, kw_only=True)


def is_entity_type(value: Any) -> bool:
    return isinstance(value, type) and issubclass(value, Entity)


def discover_hooks(cls: type) -> frozenset[str]:
    """Return the names of the lifecycle hooks `cls` implements."""

    return frozenset(name for name in HOOK_NAMES if callable(getattr(cls, name, None)))


def blank(cls: type) -> Any:
    """Instantiate `cls` with `None` for every init argument without a default."""

    required = {
        item.name: None
        for item in fields(cls)
        if item.init and item.default is MISSING and item.default_factory is MISSING
    }
    return cls(**required)
