"""Core port contracts used by adapters, the builder and the engine."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, List, Optional, Protocol

from .columns import Column, ForeignKey
from .types import MaybeRow, QueryParams, RowMapping


class DialectPort(Protocol):
    """Dialect behavior required by query compilation and CRUD operations."""

    name: str
    paramstyle: str
    supports_returning: bool
    wide_integer: bool
    temporal_as_text: bool
    current_schema: str

    @property
    def is_named(self) -> bool: ...

    def q(self, ident: str) -> str: ...

    def placeholder(self, key: str) -> str: ...

    def empty_insert(self, table_sql: str) -> str: ...

    def returning_clause(self, pk_name: str) -> str: ...

    def get_lastrowid(self, cursor: Any) -> Optional[int]: ...


class TransactionPort(Protocol):
    """An explicit transaction handle owned by whoever began it."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    @property
    def active(self) -> bool: ...


class DatabasePort(Protocol):
    """Database adapter behavior required by the builder."""

    dialect: DialectPort

    def transaction(self) -> AbstractContextManager[None]: ...

    def begin(self) -> TransactionPort: ...

    @property
    def in_transaction(self) -> bool: ...

    def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...

    def information(self, table: str, database: Optional[str] = None) -> "InformationPort": ...


class InformationPort(Protocol):
    """Schema metadata of one table."""

    def describe(self, *columns: str) -> List[Column]: ...

    def foreign_keys(self) -> List[ForeignKey]: ...


class CachePort(Protocol):
    """Key/value store for model descriptors."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def exist(self, key: str) -> bool: ...
