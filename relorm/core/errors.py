"""Exception taxonomy raised by descriptor construction and model operations.

Driver exceptions (``sqlite3.Error``, ``psycopg.Error``, ...) are never wrapped;
they reach the caller unchanged after any auto-managed transaction is rolled back.
"""

from __future__ import annotations

from typing import Any


class OrmError(Exception):
    """Base class for every error raised by relorm itself."""


class SchemaError(OrmError):
    """An entity type cannot be mapped onto the database schema."""


class NoPrimaryKey(SchemaError):
    def __init__(self, model: str):
        super().__init__(f"relorm: {model} has no primary key.")
        self.model = model


class NoBuilder(SchemaError):
    def __init__(self, model: str):
        super().__init__(f"relorm: no query builder is configured for {model}.")
        self.model = model


class AttributeNotFound(SchemaError):
    def __init__(self, model: str, attribute: str):
        super().__init__(f"relorm: attribute {attribute!r} does not exist on {model}.")
        self.model = model
        self.attribute = attribute


class ColumnNotFound(SchemaError):
    def __init__(self, table: str, column: str | None = None):
        if column is None:
            message = f"relorm: table {table!r} does not exist or has no columns."
        else:
            message = f"relorm: column {column!r} does not exist in table {table!r}."
        super().__init__(message)
        self.table = table
        self.column = column


class UnknownRelationTag(SchemaError):
    def __init__(self, model: str, attribute: str, tag: str):
        super().__init__(
            f"relorm: {model}.{attribute} relation kind {tag!r} is unknown or not "
            "allowed on this attribute type."
        )
        self.model = model
        self.attribute = attribute
        self.tag = tag


class InvalidTag(SchemaError):
    def __init__(self, tag: str, detail: str):
        super().__init__(f"relorm: invalid orm tag {tag!r}: {detail}")
        self.tag = tag


class ForeignKeyNotFound(SchemaError):
    def __init__(self, model: str, relation: str, detail: str):
        super().__init__(f"relorm: {model}.{relation} foreign key not found: {detail}")
        self.model = model
        self.relation = relation


class JoinTableNotFound(SchemaError):
    def __init__(self, table: str, foreign_key: str, association_foreign_key: str):
        super().__init__(
            f"relorm: join table {table!r} with columns {foreign_key!r} and "
            f"{association_foreign_key!r} does not exist."
        )
        self.table = table
        self.foreign_key = foreign_key
        self.association_foreign_key = association_foreign_key


class UnsupportedPolymorphic(SchemaError):
    def __init__(self, model: str, relation: str, kind: str):
        super().__init__(
            f"relorm: {model}.{relation} - polymorphic is not allowed on relation kind {kind}."
        )
        self.model = model
        self.relation = relation
        self.kind = kind


class UnknownStrategy(SchemaError):
    def __init__(self, name: str):
        super().__init__(f"relorm: loading strategy {name!r} is not registered.")
        self.name = name


class StrategyAlreadyRegistered(SchemaError):
    def __init__(self, name: str):
        super().__init__(f"relorm: loading strategy {name!r} is already registered.")
        self.name = name


class InstanceError(OrmError):
    """A model handle is used in a way its state does not allow."""


class NotInitialized(InstanceError):
    def __init__(self, operation: str, model: str):
        super().__init__(f"relorm: {operation} called on uninitialized model {model}.")
        self.operation = operation
        self.model = model


class SetCacheAfterInit(InstanceError):
    def __init__(self, model: str):
        super().__init__(f"relorm: the cache of {model} must be set before init().")
        self.model = model


class ResultMustBeList(InstanceError):
    def __init__(self, model: str, given: Any):
        super().__init__(
            f"relorm: result container for {model} must be a list, got {type(given).__name__}."
        )
        self.model = model


class MissingPrimary(InstanceError):
    def __init__(self, model: str):
        super().__init__(f"relorm: primary key of {model} is not set.")
        self.model = model


class NoValueProvided(InstanceError):
    def __init__(self, model: str):
        super().__init__(f"relorm: no value is given for {model}.")
        self.model = model


class OperationError(OrmError):
    """A database operation did not produce the expected outcome."""


class RowNotFound(OperationError):
    def __init__(self, table: str):
        super().__init__(f"relorm: no rows found in {table!r}.")
        self.table = table


class DeleteNotFound(RowNotFound):
    """DELETE (or soft delete) affected zero rows."""


class UpdateZeroRows(RowNotFound):
    """The row to update does not exist."""


class InfinityLoop(OperationError):
    def __init__(self, model: str, fingerprint: str):
        super().__init__(
            f"relorm: infinity loop detected on {model} for condition {fingerprint}."
        )
        self.model = model
        self.fingerprint = fingerprint


class ValidationFailed(OrmError, ValueError):
    """Raised when a field or relation value violates its validator config."""

    def __init__(self, entity: str, field: str, tag: str, param: str, value: Any):
        super().__init__(
            f"relorm: validation failed {entity!r} for {field!r} on the {tag!r} tag "
            f"(allowed:{param} given:{value!r})"
        )
        self.entity = entity
        self.field = field
        self.tag = tag
        self.param = param
        self.value = value
