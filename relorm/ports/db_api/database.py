"""DB-API adapter implementation for the core database port."""

from __future__ import annotations

import contextlib
from typing import Any, Iterator, Mapping

import structlog

from ...core.types import MaybeRow, QueryParams, RowMapping, Rows
from .dialects import Dialect
from .information import Information


class Transaction:
    """Explicit transaction on one `Database` connection.

    The code that called `Database.begin()` owns the transaction and must
    finish it with `commit()` or `rollback()`. Used as a context manager it
    commits on success and rolls back on any exception.
    """

    def __init__(self, db: "Database"):
        self._db = db
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def commit(self) -> None:
        """Commit and release the connection for the next transaction."""

        self._require_active()
        try:
            self._db._require_open_connection().commit()
        finally:
            self._finish()
        self._db._logger.debug("transaction_commit")

    def rollback(self) -> None:
        """Roll back every statement executed since `begin()`."""

        self._require_active()
        try:
            self._db._require_open_connection().rollback()
        finally:
            self._finish()
        self._db._logger.debug("transaction_rollback")

    def _require_active(self) -> None:
        if not self._active:
            raise RuntimeError("transaction is already finished")

    def _finish(self) -> None:
        self._active = False
        if self._db._tx is self:
            self._db._tx = None

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if not self._active:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class Database:
    """DB-API connection adapter with owned transactions and mapping rows."""

    def __init__(
        self,
        conn: Any,
        dialect: Dialect,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        """Wrap an open connection.

        Args:
            conn: DB-API connection, already connected.
            dialect: Dialect matching the driver behind `conn`.
            logger: Structured logger; defaults to the module logger.
        """

        self.conn: Any | None = conn
        self.dialect = dialect
        self._closed = False
        self._tx: Transaction | None = None
        self._logger = logger or structlog.get_logger(__name__)

    def _require_open_connection(self) -> Any:
        if self._closed or self.conn is None:
            raise RuntimeError("connection is closed")
        return self.conn

    @property
    def in_transaction(self) -> bool:
        """Whether a transaction started by `begin()` is still open."""

        return self._tx is not None and self._tx.active

    def begin(self) -> Transaction:
        """Start a transaction owned by the caller.

        Raises:
            RuntimeError: If another transaction is still open on this adapter.
        """

        conn = self._require_open_connection()
        if self.in_transaction:
            raise RuntimeError("a transaction is already active on this connection")
        autocommit = getattr(conn, "isolation_level", "") is None
        if self.dialect.explicit_begin and autocommit and not getattr(conn, "in_transaction", False):
            conn.execute("BEGIN")
        self._tx = Transaction(self)
        self._logger.debug("transaction_begin")
        return self._tx

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the block in a transaction, joining one that is already open."""

        if self.in_transaction:
            yield
            return
        with self.begin():
            yield

    def information(self, table: str, database: str | None = None) -> Information:
        """Return the metadata reader for `table`."""

        return Information(self, table, database)

    def execute(self, sql: str, params: QueryParams = None) -> Any:
        """Run one statement and hand back the live cursor."""

        cur = self._require_open_connection().cursor()
        if params is None:
            cur.execute(sql)
        else:
            cur.execute(sql, params)
        return cur

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow:
        cur = self.execute(sql, params)
        row = cur.fetchone()
        return None if row is None else _as_mapping(row, _column_names(cur))

    def fetchall(self, sql: str, params: QueryParams = None) -> Rows:
        cur = self.execute(sql, params)
        rows = cur.fetchall()
        names = _column_names(cur)
        return [_as_mapping(row, names) for row in rows]

    def close(self) -> None:
        """Close the connection; an unfinished transaction is rolled back first."""

        if self._closed:
            return
        if self._tx is not None and self._tx.active:
            self._tx.rollback()
        conn, self.conn = self.conn, None
        self._closed = True
        close = getattr(conn, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


def _column_names(cursor: Any) -> list[str]:
    description = getattr(cursor, "description", None) or ()
    return [column[0] for column in description]


def _as_mapping(row: Any, names: list[str]) -> RowMapping:
    """Turn a driver row (mapping, sequence or `keys()` row) into a mapping.

    Raises:
        TypeError: If a sequence row arrives without a cursor description.
    """

    if isinstance(row, Mapping):
        return row
    if isinstance(row, (tuple, list)):
        if not names:
            raise TypeError("Cursor has no description; cannot map tuple rows to dict.")
        return dict(zip(names, row))
    if callable(getattr(row, "keys", None)):
        return {key: row[key] for key in row.keys()}
    raise TypeError(f"Unsupported row type: {type(row)}")
