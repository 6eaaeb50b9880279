"""Model handle: one entity instance bound to its descriptor.

A `Model` carries the per-call state of the operations run on its entity:
white/blacklist, relation conditions, the change plan, the loop-detection
map and the transaction. Related entities are handled by child models that
inherit this state from their parent.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

import structlog

from . import wblist
from .changeset import ChangedValue, diff, is_empty, is_zero, primaries_set
from .codecs import from_db, to_db
from .conditions import C, Criteria, WhereInput, to_criteria
from .contracts import CachePort, TransactionPort
from .descriptors import Field, ModelDescriptor, Relation
from .entity import (
    AFTER_CREATE,
    AFTER_DELETE,
    AFTER_FIND,
    AFTER_UPDATE,
    BEFORE_CREATE,
    BEFORE_DELETE,
    BEFORE_UPDATE,
    CREATED_AT,
    UPDATED_AT,
    blank,
    is_entity_type,
)
from .errors import (
    InfinityLoop,
    MissingPrimary,
    NotInitialized,
    NoValueProvided,
    ResultMustBeList,
    RowNotFound,
    SetCacheAfterInit,
    UpdateZeroRows,
)
from .naming import namespaced_name
from .validator import validate_value

if TYPE_CHECKING:
    from .builder import Builder
    from .engine import Engine
    from .strategies import Strategy


class Model:
    """Runs reads and writes for one entity instance.

    Obtain it from `Engine.model()` and call `init()` before any operation.
    """

    def __init__(self, engine: "Engine", entity: Any, *, parent: Optional["Model"] = None):
        if isinstance(entity, type) or not is_entity_type(type(entity)):
            raise TypeError(f"{entity!r} is not an Entity instance.")
        self.engine = engine
        self.entity = entity
        self.parent = parent
        self.descriptor: Optional[ModelDescriptor] = None
        self.changes: list[ChangedValue] = []
        self.take_snapshot = parent is None
        self._logger: structlog.stdlib.BoundLogger = engine.logger
        self._fields: list[Field] = []
        self._relations: list[Relation] = []
        self._wb: Optional[wblist.WBList] = None
        self._active_wb: Optional[wblist.WBList] = None
        self._relation_conditions: dict[str, Criteria] = {}
        self._loop_map: dict[str, list[str]] = {}
        self._tx: Optional[TransactionPort] = None
        self._references_only = False
        self._strategy_name: Optional[str] = None
        self._cache: Optional[CachePort] = None
        self._cache_ttl: Optional[float] = None

    def __repr__(self) -> str:
        return f"Model({namespaced_name(type(self.entity))})"

    # -- setup -----------------------------------------------------------

    def init(self) -> "Model":
        """Load the descriptor and apply the white/blacklist.

        Raises:
            SchemaError: If the entity type cannot be mapped.
        """

        self.descriptor = self.engine.descriptor(
            type(self.entity), cache=self._cache, cache_ttl=self._cache_ttl
        )
        self._resolve()
        return self

    def set_cache(self, cache: CachePort, ttl: Optional[float] = None) -> "Model":
        """Use `cache` for descriptors of this model and its children.

        Raises:
            SetCacheAfterInit: If `init()` already ran.
        """

        if self.descriptor is not None:
            raise SetCacheAfterInit(namespaced_name(type(self.entity)))
        self._cache = cache
        self._cache_ttl = ttl
        return self

    def cache(self) -> CachePort:
        return self._cache if self._cache is not None else self.engine.cache

    def set_whitelist(self, *paths: str) -> "Model":
        return self.set_wb_list(wblist.Policy.WHITELIST, *paths)

    def set_blacklist(self, *paths: str) -> "Model":
        return self.set_wb_list(wblist.Policy.BLACKLIST, *paths)

    def set_wb_list(
        self,
        policy: wblist.Policy | str,
        *paths: str,
        explicit: bool = False,
    ) -> "Model":
        """Restrict the attributes taking part in the following operations.

        Args:
            policy: `whitelist` or `blacklist`.
            paths: Attribute names; dotted names address related attributes.
            explicit: Keep self-referencing children from inheriting the list.

        Calling it without paths removes the list.
        """

        self._wb = wblist.WBList(wblist.Policy(policy), list(paths), explicit) if paths else None
        if self.descriptor is not None:
            self._resolve()
        return self

    def wb_list(self) -> Optional[wblist.WBList]:
        """The list in effect, completed with the mandatory keys once initialised."""

        current = self._active_wb if self.descriptor is not None else self._wb
        return current.copy() if current is not None else None

    def set_relation_condition(self, path: str, where: WhereInput) -> "Model":
        """Replace the default condition of the relation at `path` (`owner.cars`)."""

        self._relation_conditions[path] = to_criteria(where)
        return self

    def relation_condition(self, path: str) -> Optional[Criteria]:
        return self._relation_conditions.get(path)

    def set_tx(self, tx: Optional[TransactionPort]) -> "Model":
        """Run writes inside `tx`; the caller commits or rolls it back."""

        self._tx = tx
        return self

    @property
    def tx(self) -> Optional[TransactionPort]:
        return self._tx

    def set_strategy(self, name: str) -> "Model":
        """Load and write with the strategy registered as `name`.

        Raises:
            UnknownStrategy: If no strategy has that name.
        """

        self.engine.strategies.get(name)
        self._strategy_name = name
        return self

    def set_references_only(self, flag: bool = True) -> "Model":
        """Link existing related entities on writes without updating them."""

        self._references_only = flag
        return self

    def references_only(self) -> bool:
        return self.root._references_only

    # -- operations ------------------------------------------------------

    def first(self, where: WhereInput = None) -> Any:
        """Load the first matching row, relations included, into the entity.

        Raises:
            RowNotFound: If no row matches.
            InfinityLoop: If a relation chain repeats a condition.
        """

        self._require_init("first")
        if self.parent is None:
            self._loop_map = {}
        criteria = to_criteria(where)
        self._resolve()
        self._check_loop(criteria)
        self._strategy().first(self, criteria)
        self.run_hook(AFTER_FIND)
        return self.entity

    def all(self, where: WhereInput = None, result: Optional[list] = None) -> list:
        """Load every matching row as new entities appended to `result`.

        Raises:
            ResultMustBeList: If `result` is not a list.
            InfinityLoop: If a relation chain repeats a condition.
        """

        self._require_init("all")
        if result is None:
            result = []
        elif not isinstance(result, list):
            raise ResultMustBeList(self.descriptor.name, result)
        if self.parent is None:
            self._loop_map = {}
        criteria = to_criteria(where)
        self._resolve()
        self._check_loop(criteria)
        start = len(result)
        self._strategy().all(self, result, criteria)
        for entity in result[start:]:
            self.run_hook(AFTER_FIND, entity)
        return result

    def count(self, where: WhereInput = None) -> int:
        self._require_init("count")
        return self.builder.count(
            self.descriptor.table, where, database=self.descriptor.database
        )

    def create(self) -> None:
        """Insert the entity and its related entities.

        Raises:
            NoValueProvided: If the entity holds no value.
            ValidationFailed: If a value violates its validator config.
        """

        self._require_init("create")
        self._write(self._create)

    def update(self) -> None:
        """Write what changed since the row was read.

        A top-level model diffs the entity against a fresh snapshot; child
        models execute the plan handed down by their parent.

        Raises:
            MissingPrimary: If the primary keys are unset.
            UpdateZeroRows: If the snapshot row does not exist.
        """

        self._require_init("update")
        self._resolve()
        if not self.primaries_set():
            raise MissingPrimary(self.descriptor.name)
        self._write(self._update)

    def delete(self) -> None:
        """Delete the row (soft delete when `deleted_at` is mapped).

        Raises:
            MissingPrimary: If the primary keys are unset.
            DeleteNotFound: If no row was affected.
        """

        self._require_init("delete")
        self._resolve()
        if not self.primaries_set():
            raise MissingPrimary(self.descriptor.name)
        self._write(self._delete)

    # -- state used by loading strategies --------------------------------

    @property
    def builder(self) -> "Builder":
        return self.engine.builder

    @property
    def fields(self) -> list[Field]:
        return self._fields

    @property
    def relations(self) -> list[Relation]:
        return self._relations

    @property
    def root(self) -> "Model":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def fields_for(self, write: bool) -> list[Field]:
        """Fields to select; computed `select` fields only take part in reads."""

        return [
            item
            for item in self._fields
            if item.permission.granted(write)
            and (item.exists or (not write and item.select is not None))
        ]

    def relations_for(self, write: bool) -> list[Relation]:
        return [
            relation
            for relation in self._relations
            if not relation.custom and relation.permission.granted(write)
        ]

    def child(self, relation: Relation, entity: Any = None) -> "Model":
        """Initialised model of a related entity, inheriting this model's state."""

        child = Model(
            self.engine,
            entity if entity is not None else blank(relation.type),
            parent=self,
        )
        child._cache = self._cache
        child._cache_ttl = self._cache_ttl
        child._wb = wblist.inherit(self._active_wb, relation)
        prefix = relation.name + "."
        child._relation_conditions = {
            path[len(prefix) :]: condition
            for path, condition in self._relation_conditions.items()
            if path.startswith(prefix)
        }
        child._loop_map = {name: list(seen) for name, seen in self._loop_map.items()}
        child._tx = self._tx
        return child.init()

    def ancestor(self, entity_type: type) -> Optional["Model"]:
        node = self.parent
        while node is not None:
            if type(node.entity) is entity_type:
                return node
            node = node.parent
        return None

    def new_entity(self) -> Any:
        return blank(self.descriptor.entity)

    def scan(self, row: dict[str, Any], entity: Any) -> Any:
        """Copy the selected columns of `row` into `entity`."""

        for item in self._fields:
            if item.column in row:
                self._set(entity, item, row[item.column])
        return entity

    def assign(self, item: Field, raw: Any) -> None:
        self._set(self.entity, item, raw)

    def db_value(self, item: Field, value: Any) -> Any:
        return to_db(
            value,
            item.annotation,
            field_name=item.name,
            codec=item.codec,
            iso_temporal=self.builder.dialect.temporal_as_text,
        )

    def insert_values(self) -> dict[str, Any]:
        """Column values of the writable, non-`None` attributes."""

        values = {}
        for item in self._fields:
            if not item.permission.write or not item.exists:
                continue
            value = getattr(self.entity, item.name)
            if value is None or (item.autoincrement and is_zero(value, item)):
                continue
            values[item.column] = self.db_value(item, value)
        return values

    def generated_key(self) -> Optional[Field]:
        """The autoincrement field still waiting for its value, if any."""

        for item in self._fields:
            if item.autoincrement and item.exists and is_zero(getattr(self.entity, item.name), item):
                return item
        return None

    def primaries_set(self) -> bool:
        return primaries_set(self.entity, self.descriptor.primary_keys)

    def primary_criteria(self) -> Criteria:
        return Criteria(
            where=tuple(
                C.eq(key.column, getattr(self.entity, key.name))
                for key in self.descriptor.primary_keys
            )
        )

    def prepare_create(self) -> None:
        """Stamp `created_at`, validate and run `before_create`.

        Raises:
            NoValueProvided: If the entity holds no value.
        """

        self._resolve()
        if CREATED_AT in self.descriptor.time_fields:
            setattr(self.entity, CREATED_AT, self.now())
        if is_empty(self.entity, self):
            raise NoValueProvided(self.descriptor.name)
        self.validate()
        self.run_hook(BEFORE_CREATE)

    def validate(self) -> None:
        """Check every writable attribute against its validator config.

        Raises:
            ValidationFailed: On the first violation.
        """

        for item in self._fields:
            if item.permission.write and item.exists:
                validate_value(
                    self.descriptor.name, item.name, item.validate, getattr(self.entity, item.name)
                )
        for relation in self._relations:
            if relation.permission.write and not relation.custom and relation.validate:
                validate_value(
                    self.descriptor.name,
                    relation.name,
                    relation.validate,
                    getattr(self.entity, relation.name),
                )

    def run_hook(self, name: str, entity: Any = None) -> None:
        if name in self.descriptor.hooks:
            getattr(self.entity if entity is None else entity, name)()

    @staticmethod
    def now() -> datetime:
        return datetime.now()

    # -- internals -------------------------------------------------------

    def _require_init(self, operation: str) -> None:
        if self.descriptor is None:
            raise NotInitialized(operation, namespaced_name(type(self.entity)))

    def _resolve(self) -> None:
        self._fields, self._relations, self._active_wb = wblist.resolve(
            self._wb, self.descriptor, self._descriptor_of
        )

    def _descriptor_of(self, entity_type: type) -> ModelDescriptor:
        return self.engine.descriptor(entity_type, cache=self._cache, cache_ttl=self._cache_ttl)

    def _strategy(self) -> "Strategy":
        return self.engine.strategies.get(self._strategy_name or self.descriptor.strategy)

    def _set(self, entity: Any, item: Field, raw: Any) -> None:
        setattr(
            entity,
            item.name,
            from_db(raw, item.annotation, field_name=item.name, codec=item.codec),
        )

    def _check_loop(self, criteria: Criteria) -> None:
        fingerprint = criteria.fingerprint()
        seen = self._loop_map.setdefault(self.descriptor.name, [])
        if fingerprint in seen:
            self._logger.warning(
                "model_loop_detected", model=self.descriptor.name, condition=fingerprint
            )
            raise InfinityLoop(self.descriptor.name, fingerprint)
        seen.append(fingerprint)

    def _write(self, operation: Callable[[], None]) -> None:
        """Run a write, inside its own transaction at the top level.

        Child models, models with a caller-owned transaction and writes
        issued while a transaction is open join the surrounding one.
        """

        if (
            self.parent is not None
            or self._tx is not None
            or not self.engine.config.auto_transaction
            or self.builder.in_transaction
        ):
            operation()
            return

        tx = self.builder.begin()
        try:
            operation()
        except BaseException:
            if tx.active:
                tx.rollback()
            raise
        tx.commit()

    def _create(self) -> None:
        self.prepare_create()
        self._strategy().create(self)
        self.run_hook(AFTER_CREATE)

    def _update(self) -> None:
        self.validate()
        self.run_hook(BEFORE_UPDATE)
        criteria = self.primary_criteria()
        if self.take_snapshot:
            self.changes = diff(self, self.entity, self._snapshot(criteria))
        if not self.changes:
            self._logger.debug("model_update_unchanged", model=self.descriptor.name)
            return
        if UPDATED_AT in self.descriptor.time_fields:
            setattr(self.entity, UPDATED_AT, self.now())
        self._strategy().update(self, criteria)
        self.run_hook(AFTER_UPDATE)

    def _delete(self) -> None:
        self.run_hook(BEFORE_DELETE)
        self._strategy().delete(self, self.primary_criteria())
        self.run_hook(AFTER_DELETE)

    def _snapshot(self, criteria: Criteria) -> Any:
        """Re-read the row and its writable relations into a fresh entity."""

        snapshot = Model(self.engine, self.new_entity())
        snapshot._cache = self._cache
        snapshot._cache_ttl = self._cache_ttl
        snapshot._wb = self._active_wb.copy() if self._active_wb is not None else None
        snapshot.init()
        snapshot._check_loop(criteria)
        try:
            snapshot._strategy().first(snapshot, criteria, write=True)
        except RowNotFound as exc:
            raise UpdateZeroRows(self.descriptor.table) from exc
        return snapshot.entity
