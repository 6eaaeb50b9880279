"""Field, relation and model descriptors built by the introspector.

A `ModelDescriptor` is built once per entity type and shared read-only.
Each model handle works on its own copies of the `Field` and `Relation`
records so white/blacklists can toggle permissions per call.
"""

from __future__ import annotations

from dataclasses import MISSING, dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from .columns import Column, ColumnKind
from .entity import CREATED_AT, DELETED_AT, TIME_FIELDS, UPDATED_AT
from .errors import AttributeNotFound, SchemaError


@dataclass
class Permission:
    """Read/write permission of one field or relation."""

    read: bool = True
    write: bool = True

    def granted(self, write: bool) -> bool:
        return self.write if write else self.read


@dataclass
class Field:
    """One database column mapped to one entity attribute.

    Attributes:
        name: Entity attribute name.
        column: Database column name.
        info: Column metadata from the database; `None` if the column is missing.
        permission: Read/write permission, mutated per operation.
        primary: Part of the primary key.
        autoincrement: Value is generated by the database on insert.
        select: Raw SQL expression selected instead of the column.
        custom: Attribute is not backed by a column.
        validate: Composite validator config.
        annotation: Resolved type annotation of the attribute.
        codec: Explicit value codec (`json`, `enum`).
        default: Dataclass default (`MISSING` if none).
        default_factory: Dataclass default factory (`MISSING` if none).
    """

    name: str
    column: str
    info: Optional[Column] = None
    permission: Permission = field(default_factory=Permission)
    primary: bool = False
    autoincrement: bool = False
    select: Optional[str] = None
    custom: bool = False
    validate: str = ""
    annotation: Any = None
    codec: Optional[str] = None
    default: Any = field(default_factory=lambda: MISSING)
    default_factory: Any = field(default_factory=lambda: MISSING)

    @property
    def kind(self) -> Optional[ColumnKind]:
        if self.info is None or self.info.type is None:
            return None
        return self.info.type.kind

    @property
    def nullable(self) -> bool:
        return self.info is None or self.info.nullable

    @property
    def exists(self) -> bool:
        """Whether the attribute is backed by a database column."""

        return self.info is not None and not self.custom

    @property
    def is_time_field(self) -> bool:
        return self.name in TIME_FIELDS

    def zero(self) -> Any:
        """The attribute's declared default, `None` without one."""

        if self.default_factory is not MISSING:
            return self.default_factory()
        if self.default is not MISSING:
            return self.default
        return None

    def copy(self) -> "Field":
        return replace(self, permission=replace(self.permission))


class RelationKind(str, Enum):
    """Kinds of relation edges."""

    HAS_ONE = "hasOne"
    BELONGS_TO = "belongsTo"
    HAS_MANY = "hasMany"
    MANY_TO_MANY = "manyToMany"

    @property
    def single(self) -> bool:
        return self in (RelationKind.HAS_ONE, RelationKind.BELONGS_TO)


@dataclass(frozen=True)
class JoinTable:
    """Many-to-many join table and its two key columns."""

    name: str
    foreign_key: str
    association_foreign_key: str


@dataclass(frozen=True)
class Polymorphic:
    """Discriminated key pair on the related entity of a polymorphic relation."""

    field: Field
    type: Field
    value: str


@dataclass
class Relation:
    """One edge of the relation graph.

    `foreign_key` is a field of the owning entity, `association_foreign_key` a
    field of the related entity. Polymorphic relations key on
    `polymorphic.field` and `polymorphic.type` instead of the association key.
    """

    name: str
    kind: RelationKind
    type: type
    foreign_key: Optional[Field] = None
    association_foreign_key: Optional[Field] = None
    join_table: Optional[JoinTable] = None
    polymorphic: Optional[Polymorphic] = None
    self_reference: bool = False
    custom: bool = False
    permission: Permission = field(default_factory=Permission)
    validate: str = ""
    default: Any = field(default_factory=lambda: MISSING)
    default_factory: Any = field(default_factory=lambda: MISSING)

    @property
    def many(self) -> bool:
        return not self.kind.single

    @property
    def is_polymorphic(self) -> bool:
        return self.polymorphic is not None

    def related_key(self) -> Field:
        """Field on the related entity matched against `foreign_key`."""

        if self.polymorphic is not None:
            return self.polymorphic.field
        if self.association_foreign_key is None:
            raise SchemaError(f"relorm: relation {self.name!r} has no association foreign key.")
        return self.association_foreign_key

    def zero(self) -> Any:
        if self.default_factory is not MISSING:
            return self.default_factory()
        if self.default is not MISSING:
            return self.default
        return [] if self.many else None

    def copy(self) -> "Relation":
        return replace(self, permission=replace(self.permission))


@dataclass(frozen=True)
class ModelDescriptor:
    """Cached, per-entity-type mapping record.

    Attributes:
        name: Namespaced type name (`module.QualName`).
        entity: The entity class.
        table: Table name.
        database: Database (or schema) name, `None` for the connection default.
        strategy: Loading strategy name.
        fields: Fields in declaration order; time fields last.
        relations: Relations in declaration order.
        hooks: Names of lifecycle hooks the entity implements.
    """

    name: str
    entity: type
    table: str
    database: Optional[str]
    strategy: str
    fields: tuple[Field, ...]
    relations: tuple[Relation, ...]
    hooks: frozenset[str] = frozenset()

    @property
    def primary_keys(self) -> tuple[Field, ...]:
        return tuple(f for f in self.fields if f.primary)

    @property
    def time_fields(self) -> tuple[str, ...]:
        """Time attributes backed by a column, in `created/updated/deleted` order."""

        present = {f.name for f in self.fields if f.exists}
        return tuple(name for name in (CREATED_AT, UPDATED_AT, DELETED_AT) if name in present)

    @property
    def soft_delete(self) -> bool:
        return DELETED_AT in self.time_fields

    def field(self, name: str) -> Field:
        for item in self.fields:
            if item.name == name:
                return item
        raise AttributeNotFound(self.name, name)

    def relation(self, name: str) -> Relation:
        for item in self.relations:
            if item.name == name:
                return item
        raise AttributeNotFound(self.name, name)

    def copy_fields(self) -> list[Field]:
        return [item.copy() for item in self.fields]

    def copy_relations(self) -> list[Relation]:
        return [item.copy() for item in self.relations]

