"""Relation graph builder.

Decides the kind of every relation attribute of an entity, resolves its
foreign keys, join table and polymorphic keys, and asks the introspector
for the related entity's descriptor (or in-progress draft).
"""

from __future__ import annotations

from dataclasses import MISSING, dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence

from .builder import Builder
from .columns import ForeignKey
from .descriptors import Field, JoinTable, Permission, Polymorphic, Relation, RelationKind
from .errors import (
    AttributeNotFound,
    ForeignKeyNotFound,
    JoinTableNotFound,
    SchemaError,
    UnknownRelationTag,
    UnsupportedPolymorphic,
)
from .naming import join_table_name, snake_case
from .tags import (
    TAG_FOREIGN_KEY,
    TAG_JOIN_ASSOCIATION_FOREIGN_KEY,
    TAG_JOIN_FOREIGN_KEY,
    TAG_JOIN_TABLE,
    TAG_POLYMORPHIC,
    TAG_POLYMORPHIC_VALUE,
    TAG_RELATION,
    OrmTag,
)

SELF_REFERENCE_ASSOCIATION_KEY = "child_id"

_SINGLE_KINDS = {RelationKind.HAS_ONE, RelationKind.BELONGS_TO}
_MANY_KINDS = {RelationKind.HAS_MANY, RelationKind.MANY_TO_MANY}


class MappedModel(Protocol):
    """What the builder needs from an owner or related model.

    Satisfied by a finished `ModelDescriptor` and by the introspector's
    draft of a model whose relations are still being built.
    """

    name: str
    entity: type
    table: str
    database: Optional[str]

    @property
    def fields(self) -> Sequence[Field]: ...


@dataclass(frozen=True)
class RelationCandidate:
    """An entity attribute whose annotation names another entity."""

    name: str
    related: type
    many: bool
    tag: OrmTag
    validate: str = ""
    default: Any = field(default_factory=lambda: MISSING)
    default_factory: Any = field(default_factory=lambda: MISSING)


class RelationBuilder:
    """Builds the `Relation` records of one owner model."""

    def __init__(self, builder: Builder, resolve: Callable[[type], MappedModel]):
        """
        Args:
            builder: Statement builder used for table metadata.
            resolve: Returns the descriptor (or draft) of a related entity type.
        """

        self.builder = builder
        self.resolve = resolve

    def build(self, owner: MappedModel, candidate: RelationCandidate) -> Relation:
        """Resolve one relation attribute of `owner`.

        Raises:
            UnknownRelationTag: The `relation` tag is unknown or does not fit the annotation.
            ForeignKeyNotFound: A derived key attribute does not exist.
            AttributeNotFound: A key attribute named by a tag does not exist.
            UnsupportedPolymorphic: Polymorphic keys on belongsTo or manyToMany.
            JoinTableNotFound: The many-to-many join table or its columns are missing.
        """

        read, write = candidate.tag.permission()
        relation = Relation(
            name=candidate.name,
            kind=RelationKind.HAS_MANY if candidate.many else RelationKind.HAS_ONE,
            type=candidate.related,
            permission=Permission(read=read, write=write),
            validate=candidate.validate,
            default=candidate.default,
            default_factory=candidate.default_factory,
        )
        tagged_kind = self._tagged_kind(owner, candidate)

        if candidate.tag.custom:
            relation.custom = True
            relation.kind = tagged_kind or self._default_kind(owner, candidate)
            return relation

        self_reference = candidate.related is owner.entity
        related = self.resolve(candidate.related)

        inferred_key: Optional[ForeignKey] = None
        if tagged_kind is not None:
            kind = tagged_kind
            inferred_key = self._declared_key(owner, related, kind)
        elif candidate.many:
            kind = self._many_kind(owner, related, candidate, self_reference)
        else:
            kind, inferred_key = self._single_kind(owner, related)
        if kind is RelationKind.HAS_MANY:
            inferred_key = self._declared_key(owner, related, kind)

        if self_reference and kind is not RelationKind.MANY_TO_MANY:
            raise SchemaError(
                f"relorm: {owner.name}.{candidate.name} self reference is only allowed "
                "on manyToMany."
            )
        if kind not in (RelationKind.HAS_ONE, RelationKind.HAS_MANY) and (
            candidate.tag.has(TAG_POLYMORPHIC) or candidate.tag.has(TAG_POLYMORPHIC_VALUE)
        ):
            raise UnsupportedPolymorphic(owner.name, candidate.name, kind.value)

        relation.kind = kind
        relation.self_reference = self_reference
        fk_name, afk_name = candidate.tag.foreign_keys()
        short_form = fk_name is not None and "=" not in (candidate.tag.get(TAG_FOREIGN_KEY) or "")

        if kind is RelationKind.BELONGS_TO:
            relation.foreign_key = self._key(
                owner,
                candidate,
                explicit=fk_name,
                column=inferred_key.primary.column if inferred_key else None,
                default=f"{snake_case(candidate.related.__name__)}_id",
            )
            relation.association_foreign_key = self._key(
                related,
                candidate,
                explicit=afk_name,
                column=inferred_key.secondary.column if inferred_key else None,
                default=_first_primary(related).name,
            )
            return relation

        relation.foreign_key = self._key(
            owner,
            candidate,
            explicit=fk_name,
            column=inferred_key.secondary.column if inferred_key else None,
            default=_first_primary(owner).name,
        )

        if kind is RelationKind.MANY_TO_MANY:
            relation.association_foreign_key = self._key(
                related, candidate, explicit=afk_name, column=None,
                default=_first_primary(related).name,
            )
            relation.join_table = self._join_table(owner, related, candidate, relation)
            return relation

        if candidate.tag.has(TAG_POLYMORPHIC):
            relation.polymorphic = self._polymorphic(owner, related, candidate)
            return relation

        owner_prefix = snake_case(owner.entity.__name__)
        if afk_name is None and short_form:
            afk_name = f"{owner_prefix}_{fk_name}"
        relation.association_foreign_key = self._key(
            related,
            candidate,
            explicit=afk_name,
            column=inferred_key.primary.column if inferred_key else None,
            default=f"{owner_prefix}_id",
        )
        return relation

    def _tagged_kind(self, owner: MappedModel, candidate: RelationCandidate) -> Optional[RelationKind]:
        raw = candidate.tag.get(TAG_RELATION)
        if raw is None:
            return None
        try:
            kind = RelationKind(raw)
        except ValueError as exc:
            raise UnknownRelationTag(owner.name, candidate.name, raw) from exc
        allowed = _MANY_KINDS if candidate.many else _SINGLE_KINDS
        if kind not in allowed:
            raise UnknownRelationTag(owner.name, candidate.name, raw)
        return kind

    def _default_kind(self, owner: MappedModel, candidate: RelationCandidate) -> RelationKind:
        if not candidate.many:
            return RelationKind.HAS_ONE
        if candidate.related is owner.entity:
            return RelationKind.MANY_TO_MANY
        return RelationKind.HAS_MANY

    def _single_kind(
        self,
        owner: MappedModel,
        related: MappedModel,
    ) -> tuple[RelationKind, Optional[ForeignKey]]:
        """hasOne when the related table references the owner, belongsTo the other way round."""

        for key in self._foreign_keys(related):
            if key.secondary.table == owner.table:
                return RelationKind.HAS_ONE, key
        for key in self._foreign_keys(owner):
            if key.secondary.table == related.table:
                return RelationKind.BELONGS_TO, key
        if _find(owner, f"{snake_case(related.entity.__name__)}_id") is not None:
            return RelationKind.BELONGS_TO, None
        return RelationKind.HAS_ONE, None

    def _many_kind(
        self,
        owner: MappedModel,
        related: MappedModel,
        candidate: RelationCandidate,
        self_reference: bool,
    ) -> RelationKind:
        if self_reference or candidate.tag.has(TAG_JOIN_TABLE):
            return RelationKind.MANY_TO_MANY
        table = join_table_name(owner.entity, related.entity)
        if self.builder.information(table, owner.database).describe():
            return RelationKind.MANY_TO_MANY
        return RelationKind.HAS_MANY

    def _declared_key(
        self,
        owner: MappedModel,
        related: MappedModel,
        kind: RelationKind,
    ) -> Optional[ForeignKey]:
        """The database foreign key backing a relation of `kind`, if declared."""

        if kind is RelationKind.BELONGS_TO:
            source, target = owner, related
        elif kind in (RelationKind.HAS_ONE, RelationKind.HAS_MANY):
            source, target = related, owner
        else:
            return None
        for key in self._foreign_keys(source):
            if key.secondary.table == target.table:
                return key
        return None

    def _foreign_keys(self, model: MappedModel) -> list[ForeignKey]:
        return list(self.builder.information(model.table, model.database).foreign_keys())

    def _key(
        self,
        model: MappedModel,
        candidate: RelationCandidate,
        *,
        explicit: Optional[str],
        column: Optional[str],
        default: str,
    ) -> Field:
        """Resolve a key field: tag first, then DB metadata, then the naming default."""

        if explicit is not None:
            found = _find(model, explicit)
            if found is None:
                raise AttributeNotFound(model.name, explicit)
            return found.copy()
        if column is not None:
            for item in model.fields:
                if item.column == column:
                    return item.copy()
        found = _find(model, default)
        if found is None:
            raise ForeignKeyNotFound(
                model.name, candidate.name, f"attribute {default!r} does not exist"
            )
        return found.copy()

    def _polymorphic(
        self,
        owner: MappedModel,
        related: MappedModel,
        candidate: RelationCandidate,
    ) -> Polymorphic:
        prefix = snake_case(candidate.tag.get(TAG_POLYMORPHIC) or owner.entity.__name__)
        keys = []
        for name in (f"{prefix}_id", f"{prefix}_type"):
            found = _find(related, name)
            if found is None:
                raise AttributeNotFound(related.name, name)
            keys.append(found.copy())
        value = candidate.tag.get(TAG_POLYMORPHIC_VALUE) or owner.entity.__name__
        return Polymorphic(field=keys[0], type=keys[1], value=value)

    def _join_table(
        self,
        owner: MappedModel,
        related: MappedModel,
        candidate: RelationCandidate,
        relation: Relation,
    ) -> JoinTable:
        if relation.foreign_key is None or relation.association_foreign_key is None:
            raise ForeignKeyNotFound(owner.name, relation.name, "many-to-many keys are unresolved")
        table = candidate.tag.get(TAG_JOIN_TABLE) or join_table_name(owner.entity, related.entity)
        join_fk = candidate.tag.get(TAG_JOIN_FOREIGN_KEY)
        join_afk = candidate.tag.get(TAG_JOIN_ASSOCIATION_FOREIGN_KEY)

        if (join_fk is None or join_afk is None) and not relation.self_reference:
            by_table = {}
            for key in self.builder.information(table, owner.database).foreign_keys():
                by_table.setdefault(key.secondary.table, []).append(key.primary.column)
            owner_columns = by_table.get(owner.table, [])
            related_columns = by_table.get(related.table, [])
            if join_fk is None and len(owner_columns) == 1:
                join_fk = owner_columns[0]
            if join_afk is None and len(related_columns) == 1:
                join_afk = related_columns[0]

        if join_fk is None:
            join_fk = f"{snake_case(owner.entity.__name__)}_{relation.foreign_key.column}"
        if join_afk is None:
            if relation.self_reference:
                join_afk = SELF_REFERENCE_ASSOCIATION_KEY
            else:
                join_afk = (
                    f"{snake_case(related.entity.__name__)}_"
                    f"{relation.association_foreign_key.column}"
                )

        columns = self.builder.information(table, owner.database).describe(join_fk, join_afk)
        if len(columns) != 2:
            raise JoinTableNotFound(table, join_fk, join_afk)
        return JoinTable(name=table, foreign_key=join_fk, association_foreign_key=join_afk)


def _find(model: MappedModel, name: str) -> Optional[Field]:
    for item in model.fields:
        if item.name == name:
            return item
    return None


def _first_primary(model: MappedModel) -> Field:
    for item in model.fields:
        if item.primary:
            return item
    raise ForeignKeyNotFound(model.name, "", "model has no primary key")
