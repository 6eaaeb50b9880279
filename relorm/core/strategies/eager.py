"""Eager loading strategy.

Every read loads the declared relations with extra queries: one query per
relation for `first`, and at most two batched queries per relation (join
table, then related table) for `all`. Writes walk the relations in
dependency order: belongsTo before the owner row, everything else after.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Sequence

from ..changeset import ChangedValue, Operation, find, is_empty, primary_value, same_key
from ..conditions import C, Criteria, OrderBy, WhereExpression
from ..descriptors import Field, Relation, RelationKind
from ..entity import AFTER_CREATE, DELETED_AT
from ..errors import DeleteNotFound, NoValueProvided, RowNotFound, UpdateZeroRows
from ..query_builder import SelectColumn

if TYPE_CHECKING:
    from ..model import Model


class EagerLoading:
    """Loads and writes a model together with all its permitted relations."""

    def first(self, model: "Model", criteria: Criteria, *, write: bool = False) -> None:
        descriptor = model.descriptor
        row = model.builder.select_first(
            descriptor.table,
            _columns(model.fields_for(write)),
            criteria,
            database=descriptor.database,
        )
        model.scan(row, model.entity)

        for relation in model.relations_for(write):
            owner_key = getattr(model.entity, relation.foreign_key.name)
            if not relation.many and self._back_reference(model, relation, [model.entity]):
                continue

            child = model.child(relation)
            condition = model.relation_condition(relation.name)
            if condition is None:
                if owner_key is None:
                    setattr(model.entity, relation.name, relation.zero())
                    continue
                condition = _first_condition(child, relation, owner_key)

            if relation.many:
                setattr(model.entity, relation.name, child.all(condition))
                continue
            try:
                setattr(model.entity, relation.name, child.first(condition))
            except RowNotFound:
                setattr(model.entity, relation.name, relation.zero())

    def all(self, model: "Model", result: list, criteria: Criteria) -> None:
        descriptor = model.descriptor
        rows = model.builder.select_all(
            descriptor.table,
            _columns(model.fields_for(False)),
            criteria,
            database=descriptor.database,
        )
        entities = [model.scan(row, model.new_entity()) for row in rows]
        result.extend(entities)
        if not entities:
            return

        for relation in model.relations_for(False):
            fk = relation.foreign_key
            if not relation.many and self._back_reference(model, relation, entities):
                continue
            for entity in entities:
                setattr(entity, relation.name, relation.zero())

            keys = _distinct(getattr(entity, fk.name) for entity in entities)
            child = model.child(relation)
            join_map: dict[str, list[Any]] = {}
            condition = model.relation_condition(relation.name)
            if relation.kind is RelationKind.MANY_TO_MANY:
                if not keys:
                    continue
                join_map = self._join_map(model, relation, keys)
                related_keys = _distinct(key for values in join_map.values() for key in values)
                if condition is None:
                    if not related_keys:
                        continue
                    condition = Criteria(
                        where=(C.in_(relation.association_foreign_key.column, related_keys),),
                        order_by=_key_order(child),
                    )
            elif condition is None:
                if not keys:
                    continue
                condition = Criteria(
                    where=tuple(_relation_where(relation, keys)),
                    order_by=_key_order(child),
                )

            related = child.all(condition)
            for entity in entities:
                owner_key = getattr(entity, fk.name)
                if relation.kind is RelationKind.MANY_TO_MANY:
                    linked = join_map.get(str(owner_key), [])
                    matches = [
                        item
                        for item in related
                        if any(
                            same_key(key, getattr(item, relation.association_foreign_key.name))
                            for key in linked
                        )
                    ]
                else:
                    related_key = relation.related_key().name
                    matches = [
                        item for item in related if same_key(owner_key, getattr(item, related_key))
                    ]
                if relation.many:
                    getattr(entity, relation.name).extend(matches)
                elif matches:
                    setattr(entity, relation.name, matches[0])

    def create(self, model: "Model") -> None:
        descriptor = model.descriptor
        entity = model.entity

        for relation in _writable(model, RelationKind.BELONGS_TO):
            value = getattr(entity, relation.name)
            if value is None:
                continue
            child = model.child(relation, value)
            if is_empty(value, child):
                continue
            self._create_or_update(child, relation.self_reference)
            setattr(
                entity,
                relation.foreign_key.name,
                getattr(value, relation.association_foreign_key.name),
            )

        values = model.insert_values()
        generated = model.generated_key()
        if not values and generated is None:
            raise NoValueProvided(descriptor.name)
        new_id = model.builder.insert(
            descriptor.table,
            values,
            returning=generated.column if generated is not None else None,
            database=descriptor.database,
        )
        if generated is not None and new_id is not None:
            model.assign(generated, new_id)

        for relation in _writable(
            model, RelationKind.HAS_ONE, RelationKind.HAS_MANY, RelationKind.MANY_TO_MANY
        ):
            value = getattr(entity, relation.name)
            if value is None or (relation.many and not value):
                continue
            if relation.kind is RelationKind.HAS_ONE:
                _stamp(model, relation, value)
                model.child(relation, value).create()
            elif relation.kind is RelationKind.HAS_MANY:
                self._create_many(model, relation, list(value))
            else:
                rows = []
                for element in value:
                    self._create_or_update(model.child(relation, element), relation.self_reference)
                    rows.append(_join_row(model, relation, element))
                _insert_join_rows(model, relation, rows)

    def update(self, model: "Model", criteria: Criteria) -> None:
        descriptor = model.descriptor
        entity = model.entity
        changes = model.changes

        for relation in _writable(model, RelationKind.BELONGS_TO):
            change = find(changes, relation.name)
            if change is None:
                continue
            fk = relation.foreign_key
            value = getattr(entity, relation.name)
            if change.operation is Operation.DELETE:
                setattr(entity, fk.name, None)
            elif change.operation is Operation.CREATE:
                self._create_or_update(model.child(relation, value), relation.self_reference)
                setattr(entity, fk.name, getattr(value, relation.association_foreign_key.name))
            else:
                child = model.child(relation, value)
                child.changes = change.changes
                child.update()
                setattr(entity, fk.name, getattr(value, relation.association_foreign_key.name))
                continue
            if find(changes, fk.name) is None:
                changes.append(
                    ChangedValue(fk.name, Operation.UPDATE, None, getattr(entity, fk.name))
                )

        values = {
            item.column: model.db_value(item, getattr(entity, item.name))
            for item in model.fields
            if item.permission.write and item.exists and find(changes, item.name) is not None
        }
        if values:
            model.builder.update(descriptor.table, values, criteria, database=descriptor.database)

        for relation in _writable(
            model, RelationKind.HAS_ONE, RelationKind.HAS_MANY, RelationKind.MANY_TO_MANY
        ):
            change = find(changes, relation.name)
            if change is None:
                continue
            if relation.kind is RelationKind.HAS_ONE:
                self._update_has_one(model, relation, change)
            elif relation.kind is RelationKind.HAS_MANY:
                self._update_has_many(model, relation, change)
            else:
                self._update_many_to_many(model, relation, change)

    def delete(self, model: "Model", criteria: Criteria) -> None:
        descriptor = model.descriptor
        if descriptor.soft_delete:
            deleted_at = descriptor.field(DELETED_AT)
            value = model.now()
            setattr(model.entity, DELETED_AT, value)
            affected = model.builder.update(
                descriptor.table,
                {deleted_at.column: model.db_value(deleted_at, value)},
                criteria,
                database=descriptor.database,
            )
            if affected == 0:
                raise DeleteNotFound(descriptor.table)
            return

        for relation in model.relations_for(True):
            if relation.kind is RelationKind.BELONGS_TO:
                continue
            owner_key = getattr(model.entity, relation.foreign_key.name)
            if relation.kind is RelationKind.MANY_TO_MANY:
                _delete_join_rows(model, relation, owner_key)
            else:
                _delete_related(model, relation, _relation_where(relation, owner_key))

        affected = model.builder.delete(descriptor.table, criteria, database=descriptor.database)
        if affected == 0:
            raise DeleteNotFound(descriptor.table)

    def _create_or_update(self, child: "Model", self_reference: bool) -> None:
        """Create a related entity without primary keys, otherwise update it.

        Entities of a references-only root are linked as they are. A
        snapshot that finds no row falls back to create.
        """

        if not child.primaries_set():
            child.create()
            return
        if self_reference or child.root.references_only():
            return
        child.take_snapshot = True
        try:
            child.update()
        except UpdateZeroRows:
            child.create()

    def _create_many(self, model: "Model", relation: Relation, elements: list[Any]) -> None:
        probe = model.child(relation)
        if any(item.permission.write and not item.custom for item in probe.relations):
            for element in elements:
                _stamp(model, relation, element)
                model.child(relation, element).create()
            return

        children = []
        batches: dict[tuple[str, ...], list[list[Any]]] = {}
        for element in elements:
            _stamp(model, relation, element)
            child = model.child(relation, element)
            child.prepare_create()
            values = child.insert_values()
            batches.setdefault(tuple(values), []).append(list(values.values()))
            children.append(child)
        for columns, rows in batches.items():
            model.builder.insert_many(
                probe.descriptor.table,
                columns,
                rows,
                database=probe.descriptor.database,
            )
        for child in children:
            child.run_hook(AFTER_CREATE)

    def _update_has_one(self, model: "Model", relation: Relation, change: ChangedValue) -> None:
        owner_key = getattr(model.entity, relation.foreign_key.name)
        value = getattr(model.entity, relation.name)
        if change.operation is Operation.DELETE:
            _delete_related(model, relation, _relation_where(relation, owner_key))
            return
        _stamp(model, relation, value)
        child = model.child(relation, value)
        if change.operation is Operation.CREATE:
            _delete_related(model, relation, _relation_where(relation, owner_key))
            child.create()
        else:
            child.changes = change.changes
            child.update()

    def _update_has_many(self, model: "Model", relation: Relation, change: ChangedValue) -> None:
        owner_key = getattr(model.entity, relation.foreign_key.name)
        elements = getattr(model.entity, relation.name) or []
        if change.operation is Operation.DELETE:
            _delete_related(model, relation, _relation_where(relation, owner_key))
            return
        if change.operation is Operation.CREATE:
            for element in elements:
                _stamp(model, relation, element)
                model.child(relation, element).create()
            return

        removed = []
        for nested in change.changes:
            if nested.operation is Operation.DELETE:
                removed.append(nested.old)
                continue
            element = elements[nested.index]
            _stamp(model, relation, element)
            child = model.child(relation, element)
            if nested.operation is Operation.CREATE:
                child.create()
            else:
                child.changes = nested.changes
                child.update()
        if removed:
            probe = model.child(relation)
            keys = [item for item in probe.fields if item.primary]
            _delete_related(model, relation, [_key_where(keys, removed)])

    def _update_many_to_many(
        self,
        model: "Model",
        relation: Relation,
        change: ChangedValue,
    ) -> None:
        owner_key = getattr(model.entity, relation.foreign_key.name)
        elements = getattr(model.entity, relation.name) or []
        if change.operation is Operation.DELETE:
            _delete_join_rows(model, relation, owner_key)
            return
        if change.operation is Operation.CREATE:
            rows = []
            for element in elements:
                self._create_or_update(model.child(relation, element), relation.self_reference)
                rows.append(_join_row(model, relation, element))
            _insert_join_rows(model, relation, rows)
            return

        rows = []
        unlinked = []
        for nested in change.changes:
            if nested.operation is Operation.DELETE:
                unlinked.append(getattr(nested.old, relation.association_foreign_key.name))
                continue
            element = elements[nested.index]
            child = model.child(relation, element)
            if nested.operation is Operation.CREATE:
                self._create_or_update(child, relation.self_reference)
                rows.append(_join_row(model, relation, element))
            else:
                child.changes = nested.changes
                child.update()
        if unlinked:
            _delete_join_rows(model, relation, owner_key, unlinked)
        _insert_join_rows(model, relation, rows)

    def _back_reference(self, model: "Model", relation: Relation, entities: list[Any]) -> bool:
        """Point every entity at the loaded ancestor it references, if any."""

        ancestor = model.ancestor(relation.type)
        if ancestor is None:
            return False
        ancestor_key = getattr(ancestor.entity, relation.related_key().name)
        owner_key = relation.foreign_key.name
        if not all(same_key(getattr(entity, owner_key), ancestor_key) for entity in entities):
            return False
        for entity in entities:
            setattr(entity, relation.name, ancestor.entity)
        return True

    def _join_map(self, model: "Model", relation: Relation, keys: list[Any]) -> dict[str, list[Any]]:
        join = relation.join_table
        rows = model.builder.select_all(
            join.name,
            [SelectColumn(join.foreign_key), SelectColumn(join.association_foreign_key)],
            [C.in_(join.foreign_key, keys)],
            database=model.descriptor.database,
        )
        join_map: dict[str, list[Any]] = {}
        for row in rows:
            linked = join_map.setdefault(str(row[join.foreign_key]), [])
            linked.append(row[join.association_foreign_key])
        return join_map


def _columns(fields: Sequence[Field]) -> list[SelectColumn]:
    return [SelectColumn(item.column, item.select) for item in fields]


def _writable(model: "Model", *kinds: RelationKind) -> list[Relation]:
    return [relation for relation in model.relations_for(True) if relation.kind in kinds]


def _distinct(values: Any) -> list[Any]:
    seen: list[Any] = []
    for value in values:
        if value is None:
            continue
        if not any(same_key(value, known) for known in seen):
            seen.append(value)
    return seen


def _key_order(child: "Model") -> tuple[OrderBy, ...]:
    return tuple(OrderBy(item.column) for item in child.fields if item.primary)


def _relation_where(relation: Relation, owner_key: Any) -> list[WhereExpression]:
    """Predicate selecting the related rows of one owner key (or a list of keys)."""

    column = relation.related_key().column
    where: list[WhereExpression] = [
        C.in_(column, owner_key) if isinstance(owner_key, list) else C.eq(column, owner_key)
    ]
    if relation.polymorphic is not None:
        where.append(C.eq(relation.polymorphic.type.column, relation.polymorphic.value))
    return where


def _first_condition(child: "Model", relation: Relation, owner_key: Any) -> Criteria:
    if relation.kind is RelationKind.MANY_TO_MANY:
        join = relation.join_table
        return Criteria(
            where=(
                C.in_select(
                    relation.association_foreign_key.column,
                    join.name,
                    join.association_foreign_key,
                    C.eq(join.foreign_key, owner_key),
                ),
            ),
            order_by=_key_order(child),
        )
    condition = Criteria(where=tuple(_relation_where(relation, owner_key)))
    if relation.kind is RelationKind.HAS_MANY:
        condition = condition.ordered(
            OrderBy(relation.related_key().column), *_key_order(child)
        )
    return condition


def _stamp(model: "Model", relation: Relation, element: Any) -> None:
    """Copy the owner key (and polymorphic discriminator) into a related entity."""

    owner_key = getattr(model.entity, relation.foreign_key.name)
    if relation.polymorphic is not None:
        setattr(element, relation.polymorphic.field.name, owner_key)
        setattr(element, relation.polymorphic.type.name, relation.polymorphic.value)
        return
    setattr(element, relation.association_foreign_key.name, owner_key)


def _key_where(keys: Sequence[Field], entities: Sequence[Any]) -> WhereExpression:
    if len(keys) == 1:
        return C.in_(keys[0].column, [primary_value(entity, keys) for entity in entities])
    return C.or_(
        *[C.and_(*[C.eq(key.column, getattr(entity, key.name)) for key in keys]) for entity in entities]
    )


def _delete_related(model: "Model", relation: Relation, where: list[WhereExpression]) -> None:
    related = model.child(relation).descriptor
    model.builder.delete(related.table, where, database=related.database)


def _join_row(model: "Model", relation: Relation, element: Any) -> tuple[Any, Any]:
    return (
        getattr(model.entity, relation.foreign_key.name),
        getattr(element, relation.association_foreign_key.name),
    )


def _insert_join_rows(model: "Model", relation: Relation, rows: list[tuple[Any, Any]]) -> None:
    if not rows:
        return
    join = relation.join_table
    model.builder.insert_many(
        join.name,
        [join.foreign_key, join.association_foreign_key],
        rows,
        database=model.descriptor.database,
    )


def _delete_join_rows(
    model: "Model",
    relation: Relation,
    owner_key: Any,
    related_keys: Optional[list[Any]] = None,
) -> None:
    join = relation.join_table
    where: list[WhereExpression] = [C.eq(join.foreign_key, owner_key)]
    if related_keys is not None:
        where.append(C.in_(join.association_foreign_key, related_keys))
    model.builder.delete(join.name, where, database=model.descriptor.database)
