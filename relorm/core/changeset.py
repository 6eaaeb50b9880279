"""Change-set engine.

`diff` compares a mutated entity with a snapshot re-read from the database
and returns the recursive plan `Update` executes: one `ChangedValue` per
changed scalar, and per relation a record whose nested `changes` describe
what happened to the related entity (or to each list element).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, Sequence

from .descriptors import Field, Relation
from .entity import UPDATED_AT


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ChangedValue:
    """One node of a change plan.

    Attributes:
        field: Attribute name on the owning entity.
        operation: What happened to the attribute.
        old: Snapshot value.
        new: Current value.
        index: List position of a created or updated element; the primary-key
            value of a deleted element.
        changes: Nested plan of a related entity or of list elements.
    """

    field: str
    operation: Operation
    old: Any = None
    new: Any = None
    index: Any = None
    changes: list["ChangedValue"] = field(default_factory=list)


class Projection(Protocol):
    """The fields and relations taking part in a diff, per model."""

    @property
    def fields(self) -> Sequence[Field]: ...

    @property
    def relations(self) -> Sequence[Relation]: ...

    def child(self, relation: Relation, entity: Any = None) -> "Projection": ...


def find(changes: Sequence[ChangedValue], name: str) -> Optional[ChangedValue]:
    for change in changes:
        if change.field == name:
            return change
    return None


def is_zero(value: Any, item: Field | Relation) -> bool:
    """`None` or the attribute's declared default."""

    if value is None:
        return True
    if isinstance(item, Relation) and item.many:
        return len(value) == 0
    return value == item.zero()


def primaries_set(entity: Any, primary_keys: Sequence[Field]) -> bool:
    return bool(primary_keys) and all(
        not is_zero(getattr(entity, key.name), key) for key in primary_keys
    )


def primary_value(entity: Any, primary_keys: Sequence[Field]) -> Any:
    """The key value; a tuple for composite keys."""

    values = tuple(getattr(entity, key.name) for key in primary_keys)
    return values[0] if len(values) == 1 else values


def same_key(left: Any, right: Any) -> bool:
    """Key equality tolerant of driver type differences (`1` and `"1"`)."""

    if left is None or right is None:
        return False
    return left == right or str(left) == str(right)


def is_empty(entity: Any, projection: Projection) -> bool:
    """Whether no mapped attribute of `entity` holds a value.

    Time fields are ignored; a related entity or a non-empty list counts as
    a value.
    """

    if entity is None:
        return True
    for item in projection.fields:
        if item.custom or not item.exists or item.is_time_field:
            continue
        if not is_zero(getattr(entity, item.name), item):
            return False
    for relation in projection.relations:
        if relation.custom:
            continue
        if not is_zero(getattr(entity, relation.name), relation):
            return False
    return True


def diff(projection: Projection, new: Any, old: Any) -> list[ChangedValue]:
    """Return the change plan turning `old` into `new`.

    Only writable attributes take part. Time fields are never compared; a
    scalar change adds an `updated_at` record when the table has that column.
    A related entity that is already being compared further up, such as the
    owner a loaded child points back to, is not compared again.
    """

    return _diff(projection, new, old, (id(new),))


def _diff(
    projection: Projection,
    new: Any,
    old: Any,
    chain: tuple[int, ...],
) -> list[ChangedValue]:
    changes: list[ChangedValue] = []
    updated_at: Optional[Field] = None
    for item in projection.fields:
        if not item.permission.write or not item.exists:
            continue
        if item.is_time_field:
            if item.name == UPDATED_AT:
                updated_at = item
            continue
        old_value = getattr(old, item.name)
        new_value = getattr(new, item.name)
        if old_value != new_value:
            changes.append(ChangedValue(item.name, Operation.UPDATE, old_value, new_value))
    if changes and updated_at is not None:
        changes.append(
            ChangedValue(
                UPDATED_AT,
                Operation.UPDATE,
                getattr(old, UPDATED_AT),
                getattr(new, UPDATED_AT),
            )
        )

    for relation in projection.relations:
        if relation.custom or not relation.permission.write:
            continue
        old_value = getattr(old, relation.name)
        new_value = getattr(new, relation.name)
        if not relation.many and id(new_value) in chain:
            continue
        child = projection.child(relation)
        if relation.many:
            change = _diff_many(child, relation, new_value or [], old_value or [], chain)
        else:
            change = _diff_single(child, relation, new_value, old_value, chain)
        if change is not None:
            changes.append(change)
    return changes


def _diff_single(
    child: Projection,
    relation: Relation,
    new: Any,
    old: Any,
    chain: tuple[int, ...],
) -> Optional[ChangedValue]:
    new_empty = is_empty(new, child)
    old_empty = is_empty(old, child)
    if new_empty and old_empty:
        return None
    if new_empty:
        return ChangedValue(relation.name, Operation.DELETE, old, new)
    primary_keys = _primary_keys(child)
    if (
        old_empty
        or not primaries_set(new, primary_keys)
        or not same_key(primary_value(new, primary_keys), primary_value(old, primary_keys))
    ):
        return ChangedValue(relation.name, Operation.CREATE, old, new)
    nested = _diff(child, new, old, chain + (id(new),))
    if not nested:
        return None
    return ChangedValue(relation.name, Operation.UPDATE, old, new, changes=nested)


def _diff_many(
    child: Projection,
    relation: Relation,
    new: list[Any],
    old: list[Any],
    chain: tuple[int, ...],
) -> Optional[ChangedValue]:
    if not new and not old:
        return None
    if not old:
        return ChangedValue(relation.name, Operation.CREATE, old, new)
    if not new:
        return ChangedValue(relation.name, Operation.DELETE, old, new)

    primary_keys = _primary_keys(child)
    remaining = list(old)
    nested: list[ChangedValue] = []
    for index, element in enumerate(new):
        if not primaries_set(element, primary_keys):
            nested.append(ChangedValue(relation.name, Operation.CREATE, None, element, index))
            continue
        key = primary_value(element, primary_keys)
        position = next(
            (
                i
                for i, candidate in enumerate(remaining)
                if same_key(primary_value(candidate, primary_keys), key)
            ),
            None,
        )
        if position is None:
            nested.append(ChangedValue(relation.name, Operation.CREATE, None, element, index))
            continue
        matched = remaining.pop(position)
        if id(element) in chain:
            continue
        element_changes = _diff(child, element, matched, chain + (id(element),))
        if element_changes:
            nested.append(
                ChangedValue(
                    relation.name, Operation.UPDATE, matched, element, index, element_changes
                )
            )
    for element in remaining:
        nested.append(
            ChangedValue(
                relation.name,
                Operation.DELETE,
                element,
                None,
                primary_value(element, primary_keys),
            )
        )
    if not nested:
        return None
    return ChangedValue(relation.name, Operation.UPDATE, old, new, changes=nested)


def _primary_keys(projection: Projection) -> list[Field]:
    return [item for item in projection.fields if item.primary]
