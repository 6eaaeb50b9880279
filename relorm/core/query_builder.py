"""SQL fragment compilation shared by the builder and the loading strategies.

Every fragment writes its values into a `Bindings` collector, so one
statement assembled from several fragments (assignments, a `WHERE` clause
with a sub-select, paging) ends up with a single parameter set whose names
never collide.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from .conditions import (
    EXPRESSION_TYPES,
    Condition,
    ConditionGroup,
    NotCondition,
    OrderBy,
    SubqueryCondition,
    WhereExpression,
)
from .contracts import DialectPort
from .types import QueryParams

WhereArg = Optional[Sequence[WhereExpression] | WhereExpression]


@dataclass(frozen=True)
class CompiledFragment:
    """SQL text together with the parameters it binds."""

    sql: str
    params: QueryParams


@dataclass(frozen=True)
class SelectColumn:
    """One projected column, optionally produced by a raw SQL expression."""

    name: str
    expression: Optional[str] = None


class ParamNameGenerator:
    """Numbered parameter names; the counter is shared by a whole statement."""

    def __init__(self) -> None:
        self._counter = 0

    def next(self, base: str) -> str:
        self._counter += 1
        stem = "".join(ch if ch == "_" or ch.isalnum() else "_" for ch in base)
        return f"{stem}_{self._counter}"


class Bindings:
    """Parameters of one statement, kept in the dialect's paramstyle.

    Named dialects collect a dict keyed by generated names. Positional
    dialects collect a list in placeholder order.
    """

    def __init__(
        self,
        dialect: DialectPort,
        names: Optional[ParamNameGenerator] = None,
        initial: QueryParams = None,
    ):
        self.dialect = dialect
        self.names = names or ParamNameGenerator()
        self.values: QueryParams = {} if dialect.is_named else []
        if initial:
            self.merge(initial)

    def add(self, hint: str, value: Any) -> str:
        """Bind `value` under a fresh name derived from `hint`.

        Returns:
            The placeholder to splice into the SQL text.
        """

        return self.put(self.names.next(hint), value)

    def put(self, key: str, value: Any) -> str:
        """Bind `value` under the exact name `key`."""

        if isinstance(self.values, dict):
            self.values[key] = value
        else:
            self.values.append(value)
        return self.dialect.placeholder(key)

    def merge(self, params: QueryParams) -> None:
        if isinstance(self.values, dict) and isinstance(params, dict):
            self.values.update(params)
        elif isinstance(self.values, list) and isinstance(params, list):
            self.values.extend(params)

    def or_none(self) -> QueryParams:
        return self.values or None


def quote_table(table: str, dialect: DialectPort) -> str:
    """Quote a table name, keeping a `database.table` prefix apart."""

    return ".".join(map(dialect.q, table.split(".")))


def compile_where(
    where: WhereArg,
    dialect: DialectPort,
    generator: Optional[ParamNameGenerator] = None,
) -> CompiledFragment:
    """Compile expressions into a ` WHERE ...` fragment joined with `AND`.

    Args:
        where: A single expression, a sequence of expressions, or `None`.
        dialect: Dialect used for quoting and placeholders.
        generator: Name source shared with other fragments of the same
            statement.

    Returns:
        The fragment; its SQL is empty and its params `None` when there is
        nothing to filter on.
    """

    expressions = _expressions(where)
    if not expressions:
        return CompiledFragment("", None)
    bindings = Bindings(dialect, generator)
    return CompiledFragment(render_where(expressions, bindings), bindings.values)


def render_where(where: WhereArg, bindings: Bindings) -> str:
    """Render a ` WHERE ...` clause, binding its values into `bindings`."""

    expressions = _expressions(where)
    if not expressions:
        return ""
    return " WHERE " + " AND ".join(_render(item, bindings) for item in expressions)


def compile_order_by(order_by: Optional[Sequence[OrderBy]], dialect: DialectPort) -> str:
    if not order_by:
        return ""
    terms = [f"{dialect.q(item.col)} {'DESC' if item.desc else 'ASC'}" for item in order_by]
    return " ORDER BY " + ", ".join(terms)


def compile_select_columns(columns: Sequence[SelectColumn], dialect: DialectPort) -> str:
    """Compile a projection list; custom expressions become `(expr) AS "col"`."""

    if not columns:
        return "*"
    return ", ".join(
        f"({column.expression}) AS {dialect.q(column.name)}"
        if column.expression
        else dialect.q(column.name)
        for column in columns
    )


def append_limit_offset(
    sql: str,
    params: QueryParams,
    *,
    limit: Optional[int],
    offset: Optional[int],
    dialect: DialectPort,
) -> Tuple[str, QueryParams]:
    """Append `LIMIT`/`OFFSET` and bind their values after `params`.

    Raises:
        ValueError: If `limit` is not positive or `offset` is negative.
    """

    if limit is not None and limit <= 0:
        raise ValueError("limit must be a positive integer.")
    if offset is not None and offset < 0:
        raise ValueError("offset must be zero or a positive integer.")

    bindings = Bindings(dialect, initial=params)
    if limit is not None:
        sql += " LIMIT " + bindings.put("__limit", limit)
    if offset is not None:
        sql += " OFFSET " + bindings.put("__offset", offset)
    return sql, bindings.or_none()


def _expressions(where: WhereArg) -> list[WhereExpression]:
    if where is None:
        return []
    if isinstance(where, EXPRESSION_TYPES):
        return [where]
    return list(where)


def _render(item: WhereExpression, bindings: Bindings) -> str:
    q = bindings.dialect.q
    if isinstance(item, Condition):
        return _render_condition(item, bindings)
    if isinstance(item, ConditionGroup):
        joined = f" {item.operator} ".join(f"({_render(child, bindings)})" for child in item.items)
        return f"({joined})"
    if isinstance(item, NotCondition):
        return f"NOT ({_render(item.item, bindings)})"
    # Sub-select: col IN (SELECT select_col FROM table WHERE ...).
    inner = render_where(item.where, bindings)
    source = quote_table(item.table, bindings.dialect)
    return f"{q(item.col)} IN (SELECT {q(item.select_col)} FROM {source}{inner})"


def _render_condition(condition: Condition, bindings: Bindings) -> str:
    column = bindings.dialect.q(condition.col)
    if condition.is_unary:
        return f"{column} {condition.op}"
    if condition.op != "IN":
        return f"{column} {condition.op} {bindings.add(condition.col, condition.value)}"
    values = list(condition.values or ())
    if not values:
        return "1=0"
    placeholders = ", ".join(bindings.add(condition.col, value) for value in values)
    return f"{column} IN ({placeholders})"
