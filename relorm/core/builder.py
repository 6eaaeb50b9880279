"""Statement builder consumed by models and loading strategies.

`Builder` turns table names, projections and `Criteria` into SQL for the
configured dialect, executes it through a `DatabasePort`, and logs every
statement.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

import structlog

from .conditions import Criteria, WhereInput, to_criteria
from .contracts import DatabasePort, InformationPort, TransactionPort
from .errors import RowNotFound
from .query_builder import (
    Bindings,
    SelectColumn,
    append_limit_offset,
    compile_order_by,
    compile_select_columns,
    compile_where,
    quote_table,
    render_where,
)
from .types import ColumnValues, QueryParams, RowMapping, Rows


class Builder:
    """SQL statement builder bound to one database connection."""

    def __init__(
        self,
        db: DatabasePort,
        *,
        database: Optional[str] = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        """Create a builder.

        Args:
            db: Database adapter that executes the statements.
            database: Default database (or schema) used to qualify tables.
            logger: Structured logger; defaults to the module logger.
        """

        self.db = db
        self.database = database
        self._logger = logger or structlog.get_logger(__name__)

    @property
    def dialect(self):
        return self.db.dialect

    def quote(self, ident: str) -> str:
        """Quote one identifier with the dialect's quote character."""

        return self.dialect.q(ident)

    def table_ref(self, table: str, database: Optional[str] = None) -> str:
        """Return the quoted, database-qualified table reference."""

        database = database if database is not None else self.database
        if database and "." not in table:
            table = f"{database}.{table}"
        return quote_table(table, self.dialect)

    def information(self, table: str, database: Optional[str] = None) -> InformationPort:
        """Return the metadata reader of `table`."""

        return self.db.information(table, database if database is not None else self.database)

    def begin(self) -> TransactionPort:
        return self.db.begin()

    @property
    def in_transaction(self) -> bool:
        return bool(self.db.in_transaction)

    def select_all(
        self,
        table: str,
        columns: Sequence[SelectColumn] = (),
        where: WhereInput = None,
        *,
        database: Optional[str] = None,
    ) -> Rows:
        """Run `SELECT` and return every row.

        Args:
            table: Table name.
            columns: Projection; empty selects `*`.
            where: Expressions or `Criteria` with ordering and paging.
            database: Database override for this statement.

        Returns:
            Result rows as mappings.
        """

        sql, params = self._select_sql(table, columns, to_criteria(where), database)
        self._log(sql, params)
        return self.db.fetchall(sql, params)

    def select_first(
        self,
        table: str,
        columns: Sequence[SelectColumn] = (),
        where: WhereInput = None,
        *,
        database: Optional[str] = None,
    ) -> RowMapping:
        """Run `SELECT ... LIMIT 1` and return the row.

        Raises:
            RowNotFound: If no row matches.
        """

        criteria = to_criteria(where)
        if criteria.limit is None:
            criteria = Criteria(
                where=criteria.where,
                order_by=criteria.order_by,
                limit=1,
                offset=criteria.offset,
            )
        sql, params = self._select_sql(table, columns, criteria, database)
        self._log(sql, params)
        row = self.db.fetchone(sql, params)
        if row is None:
            raise RowNotFound(table)
        return row

    def count(
        self,
        table: str,
        where: WhereInput = None,
        *,
        database: Optional[str] = None,
    ) -> int:
        """Return `SELECT COUNT(*)` for the matching rows."""

        criteria = to_criteria(where)
        fragment = compile_where(criteria.where, self.dialect)
        sql = (
            f'SELECT COUNT(*) AS {self.quote("count")} '
            f"FROM {self.table_ref(table, database)}{fragment.sql};"
        )
        self._log(sql, fragment.params)
        row = self.db.fetchone(sql, fragment.params)
        if row is None:
            return 0
        return int(next(iter(row.values())))

    def insert(
        self,
        table: str,
        values: ColumnValues,
        *,
        returning: Optional[str] = None,
        database: Optional[str] = None,
    ) -> Any:
        """Insert one row.

        Args:
            table: Table name.
            values: Column values to write.
            returning: Auto-generated column whose new value is returned.
            database: Database override for this statement.

        Returns:
            The generated value of `returning`, or `None`.
        """

        table_sql = self.table_ref(table, database)
        bindings = Bindings(self.dialect)
        if values:
            sql = (
                f"INSERT INTO {table_sql} ({self._column_list(values)}) "
                f"VALUES ({self._bind_row(values, values.values(), bindings)})"
            )
        else:
            sql = self.dialect.empty_insert(table_sql)
        use_returning = returning is not None and self.dialect.supports_returning
        if use_returning:
            sql += self.dialect.returning_clause(returning)
        sql += ";"

        params = bindings.or_none()
        self._log(sql, params)
        cur = self.db.execute(sql, params)
        if returning is None:
            return None
        if not use_returning:
            return self.dialect.get_lastrowid(cur)
        # Drain the cursor so the statement is finished before COMMIT.
        rows = cur.fetchall()
        if not rows:
            return None
        first = rows[0]
        if isinstance(first, (tuple, list)):
            return first[0]
        return next(iter(dict(first).values()))

    def insert_many(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        database: Optional[str] = None,
    ) -> None:
        """Insert several rows with one multi-row `VALUES` statement."""

        if not rows:
            return
        bindings = Bindings(self.dialect)
        groups = ", ".join(f"({self._bind_row(columns, row, bindings)})" for row in rows)
        sql = (
            f"INSERT INTO {self.table_ref(table, database)} "
            f"({self._column_list(columns)}) VALUES {groups};"
        )
        self._log(sql, bindings.values)
        self.db.execute(sql, bindings.values)

    def update(
        self,
        table: str,
        values: ColumnValues,
        where: WhereInput = None,
        *,
        database: Optional[str] = None,
    ) -> int:
        """Run `UPDATE` and return the number of affected rows."""

        if not values:
            raise ValueError("update requires at least one column value.")
        bindings = Bindings(self.dialect)
        assignments = ", ".join(
            f"{self.quote(col)} = {bindings.add(col, value)}" for col, value in values.items()
        )
        where_sql = render_where(to_criteria(where).where, bindings)
        sql = f"UPDATE {self.table_ref(table, database)} SET {assignments}{where_sql};"
        self._log(sql, bindings.values)
        return _rowcount(self.db.execute(sql, bindings.values))

    def delete(
        self,
        table: str,
        where: WhereInput = None,
        *,
        database: Optional[str] = None,
    ) -> int:
        """Run `DELETE` and return the number of affected rows."""

        fragment = compile_where(to_criteria(where).where, self.dialect)
        sql = f"DELETE FROM {self.table_ref(table, database)}{fragment.sql};"
        self._log(sql, fragment.params)
        return _rowcount(self.db.execute(sql, fragment.params))

    def _select_sql(
        self,
        table: str,
        columns: Sequence[SelectColumn],
        criteria: Criteria,
        database: Optional[str],
    ) -> tuple[str, QueryParams]:
        fragment = compile_where(criteria.where, self.dialect)
        sql = (
            f"SELECT {compile_select_columns(columns, self.dialect)} "
            f"FROM {self.table_ref(table, database)}{fragment.sql}"
            f"{compile_order_by(criteria.order_by, self.dialect)}"
        )
        sql, params = append_limit_offset(
            sql,
            fragment.params,
            limit=criteria.limit,
            offset=criteria.offset,
            dialect=self.dialect,
        )
        return sql + ";", params

    def _column_list(self, columns: Iterable[str]) -> str:
        return ", ".join(self.quote(col) for col in columns)

    def _bind_row(self, columns: Iterable[str], values: Iterable[Any], bindings: Bindings) -> str:
        return ", ".join(bindings.add(col, value) for col, value in zip(columns, values))

    def _log(self, sql: str, params: QueryParams) -> None:
        self._logger.debug("sql_executed", sql=sql, params=params)


def _rowcount(cursor: Any) -> int:
    count = getattr(cursor, "rowcount", -1)
    return -1 if count is None else int(count)
