"""White/blacklist resolution of fields and relations per operation.

A list holds attribute names; dotted names (`owner.name`) address the
attributes of a related entity and are handed down to the related model
with the prefix stripped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from .descriptors import Field, ModelDescriptor, Relation
from .errors import SchemaError

DescriptorResolver = Callable[[type], ModelDescriptor]


class Policy(str, Enum):
    BLACKLIST = "blacklist"
    WHITELIST = "whitelist"


@dataclass
class WBList:
    """A white- or blacklist of attribute paths.

    Attributes:
        policy: Whether the paths are allowed or denied.
        fields: Attribute paths, dotted for related attributes.
        explicit: Set by the caller on this model; not handed down unchanged to
            self-referencing children.
    """

    policy: Policy
    fields: list[str] = field(default_factory=list)
    explicit: bool = False

    @property
    def whitelist(self) -> bool:
        return self.policy is Policy.WHITELIST

    def copy(self) -> "WBList":
        return WBList(self.policy, list(self.fields), self.explicit)


def for_relation(parent: Optional[WBList], relation: str) -> Optional[WBList]:
    """Return the list a related model inherits for `relation`.

    Entries prefixed with `<relation>.` are kept with the prefix stripped;
    `None` if no entry addresses the relation.
    """

    if parent is None:
        return None
    prefix = relation + "."
    fields = [name[len(prefix) :] for name in parent.fields if name.startswith(prefix)]
    if not fields:
        return None
    return WBList(parent.policy, fields)


def inherit(
    parent: Optional[WBList],
    relation: Relation,
) -> Optional[WBList]:
    """List of a child model: self references reuse a non-explicit parent list."""

    if parent is None:
        return None
    if relation.self_reference and not parent.explicit:
        return WBList(parent.policy, list(parent.fields))
    return for_relation(parent, relation.name)


def resolve(
    wb: Optional[WBList],
    descriptor: ModelDescriptor,
    resolve_descriptor: DescriptorResolver,
) -> tuple[list[Field], list[Relation], Optional[WBList]]:
    """Project the descriptor's fields and relations through `wb`.

    Mandatory keys are added to a whitelist and removed from a blacklist
    first. Each resulting permission is the descriptor permission restricted
    by the list.

    Returns:
        Field copies, relation copies, and the completed list (`None` when a
        blacklist ended up empty).
    """

    fields = descriptor.copy_fields()
    relations = descriptor.copy_relations()
    if wb is None:
        return fields, relations, None

    wb = with_mandatory_keys(wb.copy(), descriptor, resolve_descriptor)
    if wb is None:
        return fields, relations, None

    allowed_when_listed = wb.whitelist
    listed = set(wb.fields)
    for item in fields:
        allowed = (item.name in listed) == allowed_when_listed
        item.permission.read = item.permission.read and allowed
        item.permission.write = item.permission.write and allowed

    for relation in relations:
        nested_prefix = relation.name + "."
        exact = relation.name in listed
        hit = exact or (wb.whitelist and any(name.startswith(nested_prefix) for name in wb.fields))
        allowed = hit == allowed_when_listed
        relation.permission.read = relation.permission.read and allowed
        relation.permission.write = relation.permission.write and allowed
        if exact:
            wb.fields = [name for name in wb.fields if not name.startswith(nested_prefix)]
    return fields, relations, wb


def with_mandatory_keys(
    wb: WBList,
    descriptor: ModelDescriptor,
    resolve_descriptor: DescriptorResolver,
) -> Optional[WBList]:
    """Add the mandatory keys to a whitelist, or drop them from a blacklist.

    Primary keys and time fields are always mandatory. A relation addressed
    as a whole needs its foreign key on a whitelist; a relation addressed
    by dotted paths needs the keys along each path; a relation a blacklist
    does not address keeps its foreign key.
    """

    mandatory: list[str] = [item.name for item in descriptor.primary_keys]
    mandatory.extend(descriptor.time_fields)

    for relation in descriptor.relations:
        if relation.custom or relation.foreign_key is None:
            continue
        if relation.name in wb.fields:
            if wb.whitelist:
                _append(mandatory, [relation.foreign_key.name])
            continue
        nested = [name for name in wb.fields if name.startswith(relation.name + ".")]
        if nested:
            for name in nested:
                path = name.split(".")[1:]
                _append(mandatory, _path_keys(relation, path, resolve_descriptor))
        elif not wb.whitelist:
            _append(mandatory, [relation.foreign_key.name])

    if wb.whitelist:
        _append(wb.fields, mandatory)
    else:
        wb.fields = [name for name in wb.fields if name not in mandatory]
    if not wb.fields:
        return None
    return wb


def _path_keys(
    relation: Relation,
    path: list[str],
    resolve_descriptor: DescriptorResolver,
) -> list[str]:
    """Keys needed to load `relation` and, recursively, the relation `path` walks into."""

    related = resolve_descriptor(relation.type)
    prefix = relation.name + "."
    keys = [prefix + item.name for item in related.primary_keys]
    if relation.foreign_key is None:
        raise SchemaError(f"relorm: relation {relation.name!r} has no foreign key.")
    _append(keys, [relation.foreign_key.name])
    if relation.polymorphic is not None:
        _append(keys, [prefix + relation.polymorphic.field.name, prefix + relation.polymorphic.type.name])
    elif relation.association_foreign_key is not None:
        _append(keys, [prefix + relation.association_foreign_key.name])

    if len(path) > 1:
        child = related.relation(path[0])
        if not child.custom and child.foreign_key is not None:
            _append(keys, [prefix + key for key in _path_keys(child, path[1:], resolve_descriptor)])
    return keys


def _append(target: list[str], names: Iterable[str]) -> None:
    for name in names:
        if name not in target:
            target.append(name)
