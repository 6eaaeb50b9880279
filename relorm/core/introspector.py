"""Descriptor construction and caching.

The introspector reflects an entity dataclass once, merges the described
table columns into its fields, builds its relations (recursively building
the related entity types) and stores the frozen `ModelDescriptor` in the
descriptor cache.

Related types that are still being built are resolved to their draft,
which already carries the final fields; this breaks relation loops
(`Car.owner -> Owner.cars -> Car`). Descriptors are only cached once the
outermost build succeeds.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import Any, Optional, get_type_hints

import structlog

from .builder import Builder
from .codecs import list_item_type, unwrap_optional, validate_codec
from .columns import Column
from .contracts import CachePort
from .descriptors import Field, ModelDescriptor, Permission, Relation, RelationKind
from .entity import discover_hooks, is_entity_type
from .errors import ColumnNotFound, NoBuilder, NoPrimaryKey
from .naming import default_table_name, namespaced_name
from .relations import RelationBuilder, RelationCandidate
from .tags import TAG_COLUMN, TAG_SELECT, OrmTag, orm_tag, validate_tag
from .validator import compose_config, is_skipped, parse_config


@dataclasses.dataclass
class _Draft:
    """A model whose fields are final and whose relations are being built."""

    name: str
    entity: type
    table: str
    database: Optional[str]
    fields: list[Field] = dataclasses.field(default_factory=list)


class Introspector:
    """Builds and caches `ModelDescriptor`s keyed by namespaced type name."""

    def __init__(
        self,
        builder: Optional[Builder],
        cache: CachePort,
        *,
        strategy: str = "eager",
        cache_ttl: Optional[float] = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        """Create an introspector.

        Args:
            builder: Statement builder used to describe tables.
            cache: Descriptor cache.
            strategy: Loading strategy of entities that declare none.
            cache_ttl: Lifetime of cached descriptors; `None` keeps them forever.
            logger: Structured logger; defaults to the module logger.
        """

        self.builder = builder
        self.cache = cache
        self.strategy = strategy
        self.cache_ttl = cache_ttl
        self._logger = logger or structlog.get_logger(__name__)
        self._lock = threading.RLock()
        self._building: dict[str, _Draft] = {}
        self._pending: dict[str, ModelDescriptor] = {}

    def descriptor(self, entity_type: type) -> ModelDescriptor:
        """Return the descriptor of `entity_type`, building it on first use.

        Raises:
            TypeError: If `entity_type` is not an `Entity` dataclass.
            SchemaError: If the type cannot be mapped onto its table.
        """

        if not is_entity_type(entity_type) or not dataclasses.is_dataclass(entity_type):
            raise TypeError(f"{entity_type!r} is not an Entity dataclass.")
        name = namespaced_name(entity_type)
        cached = self._cached(name)
        if cached is not None:
            return cached

        with self._lock:
            if self.cache.exist(name):
                return self.cache.get(name)
            try:
                descriptor = self._build(entity_type, name)
                for built in self._pending.values():
                    self.cache.set(built.name, built, self.cache_ttl)
                    self._logger.info(
                        "descriptor_built",
                        model=built.name,
                        table=built.table,
                        fields=len(built.fields),
                        relations=len(built.relations),
                    )
            finally:
                self._building.clear()
                self._pending.clear()
        return descriptor

    def _cached(self, name: str) -> Optional[ModelDescriptor]:
        if not self.cache.exist(name):
            return None
        self._logger.debug("descriptor_cache_hit", model=name)
        return self.cache.get(name)

    def _resolve(self, entity_type: type) -> Any:
        name = namespaced_name(entity_type)
        if name in self._building:
            return self._building[name]
        if name in self._pending:
            return self._pending[name]
        cached = self._cached(name)
        if cached is not None:
            return cached
        return self._build(entity_type, name)

    def _build(self, entity_type: type, name: str) -> ModelDescriptor:
        if self.builder is None:
            raise NoBuilder(name)

        table = default_table_name(entity_type)
        database = getattr(entity_type, "__database__", None) or self.builder.database
        draft = _Draft(name=name, entity=entity_type, table=table, database=database)
        self._building[name] = draft

        columns = {
            column.name: column
            for column in self.builder.information(table, database).describe()
        }
        if not columns:
            raise ColumnNotFound(table)

        hints = get_type_hints(entity_type)
        fields: list[Field] = []
        candidates: list[RelationCandidate] = []
        for item in dataclasses.fields(entity_type):
            if item.name.startswith("_"):
                continue
            tag = orm_tag(item)
            if tag.skip:
                continue
            annotation = hints.get(item.name, Any)
            related, many = _related_type(annotation)
            if related is not None:
                candidates.append(
                    RelationCandidate(
                        name=item.name,
                        related=related,
                        many=many,
                        tag=tag,
                        validate=validate_tag(item),
                        default=item.default,
                        default_factory=item.default_factory,
                    )
                )
                continue
            field = _field(item, tag, annotation, columns, table)
            if field is not None:
                fields.append(field)

        fields = [f for f in fields if not f.is_time_field] + [f for f in fields if f.is_time_field]
        if not any(f.primary for f in fields):
            for field in fields:
                if field.name == "id" and field.exists:
                    field.primary = True
        if not any(f.primary for f in fields):
            raise NoPrimaryKey(name)
        draft.fields = fields

        relation_builder = RelationBuilder(self.builder, self._resolve)
        relations = [relation_builder.build(draft, candidate) for candidate in candidates]
        _compose_validators(fields, relations)

        descriptor = ModelDescriptor(
            name=name,
            entity=entity_type,
            table=table,
            database=database,
            strategy=getattr(entity_type, "__strategy__", None) or self.strategy,
            fields=tuple(fields),
            relations=tuple(relations),
            hooks=discover_hooks(entity_type),
        )
        del self._building[name]
        self._pending[name] = descriptor
        return descriptor


def _related_type(annotation: Any) -> tuple[Optional[type], bool]:
    """Return `(entity type, many)` when the annotation names an entity."""

    item = list_item_type(annotation)
    if item is not None:
        item = unwrap_optional(item)
        return (item, True) if is_entity_type(item) else (None, False)
    base = unwrap_optional(annotation)
    if is_entity_type(base):
        return base, False
    return None, False


def _field(
    item: dataclasses.Field,
    tag: OrmTag,
    annotation: Any,
    columns: dict[str, Column],
    table: str,
) -> Optional[Field]:
    read, write = tag.permission()
    column = tag.get(TAG_COLUMN) or item.name
    field = Field(
        name=item.name,
        column=column,
        permission=Permission(read=read, write=write),
        select=tag.get(TAG_SELECT),
        custom=tag.custom,
        validate=validate_tag(item),
        annotation=annotation,
        codec=validate_codec(item.name, item.metadata.get("codec")),
        default=item.default,
        default_factory=item.default_factory,
    )
    if field.custom:
        field.permission = Permission(read=False, write=False)
        return field

    info = columns.get(column)
    if info is None:
        if field.is_time_field:
            return None
        if tag.has(TAG_COLUMN):
            raise ColumnNotFound(table, column)
        field.permission = Permission(read=read and field.select is not None, write=False)
        return field

    field.info = info
    field.primary = tag.primary or info.primary_key
    field.autoincrement = info.autoincrement
    return field


def _compose_validators(fields: list[Field], relations: list[Relation]) -> None:
    belongs_to_keys = {
        relation.foreign_key.name
        for relation in relations
        if relation.kind is RelationKind.BELONGS_TO and relation.foreign_key is not None
    }
    for field in fields:
        field.validate = compose_config(field, belongs_to_key=field.name in belongs_to_keys)
    for relation in relations:
        if not is_skipped(relation.validate):
            parse_config(relation.validate)
