"""Filter expressions and the `Criteria` passed to model reads.

Expressions are small frozen dataclasses built through the `C` factory:

    C.and_(C.eq("brand", "BMW"), C.is_null("deleted_at"))

Relation loading also uses `C.in_select` to reach many-to-many rows through
their join table inside a single statement.
"""

from __future__ import annotations

from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional, Sequence


@dataclass(frozen=True)
class Condition:
    """A column compared with a value, a list of values, or nothing.

    Attributes:
        col: Unquoted column name.
        op: SQL operator such as `=`, `IN` or `IS NULL`.
        value: Right-hand side of a binary operator.
        values: Candidates of an `IN` test.
        is_unary: The operator takes no operand (`IS NULL`, `IS NOT NULL`).
    """

    col: str
    op: str
    value: Any = None
    values: Optional[Sequence[Any]] = None
    is_unary: bool = False


@dataclass(frozen=True)
class ConditionGroup:
    """Expressions joined by `AND` or `OR`."""

    operator: str
    items: tuple["WhereExpression", ...]


@dataclass(frozen=True)
class NotCondition:
    item: "WhereExpression"


@dataclass(frozen=True)
class SubqueryCondition:
    """`col IN (SELECT select_col FROM table WHERE ...)`."""

    col: str
    table: str
    select_col: str
    where: tuple["WhereExpression", ...]


WhereExpression = Condition | ConditionGroup | NotCondition | SubqueryCondition

EXPRESSION_TYPES = (Condition, ConditionGroup, NotCondition, SubqueryCondition)


def ensure_expression(item: Any) -> WhereExpression:
    """Return `item` unchanged if it is a filter expression.

    Raises:
        TypeError: For anything else.
    """

    if isinstance(item, EXPRESSION_TYPES):
        return item
    raise TypeError(
        "Expression must be Condition, ConditionGroup, NotCondition, "
        f"or SubqueryCondition, not {type(item).__name__}."
    )


def _flatten(items: Sequence[Any]) -> tuple[WhereExpression, ...]:
    # A single list argument stands for its elements: C.and_([a, b]).
    if len(items) == 1 and isinstance(items[0], SequenceABC) and not isinstance(
        items[0], (str, bytes, *EXPRESSION_TYPES)
    ):
        items = items[0]
    expressions = tuple(ensure_expression(item) for item in items)
    if not expressions:
        raise ValueError("Grouped condition must contain at least one expression.")
    return expressions


class C:
    """Factory for filter expressions."""

    @staticmethod
    def eq(col: str, val: Any) -> Condition:
        return Condition(col, "=", val)

    @staticmethod
    def ne(col: str, val: Any) -> Condition:
        return Condition(col, "<>", val)

    @staticmethod
    def lt(col: str, val: Any) -> Condition:
        return Condition(col, "<", val)

    @staticmethod
    def le(col: str, val: Any) -> Condition:
        return Condition(col, "<=", val)

    @staticmethod
    def gt(col: str, val: Any) -> Condition:
        return Condition(col, ">", val)

    @staticmethod
    def ge(col: str, val: Any) -> Condition:
        return Condition(col, ">=", val)

    @staticmethod
    def like(col: str, pattern: str) -> Condition:
        return Condition(col, "LIKE", pattern)

    @staticmethod
    def is_null(col: str) -> Condition:
        return Condition(col, "IS NULL", is_unary=True)

    @staticmethod
    def is_not_null(col: str) -> Condition:
        return Condition(col, "IS NOT NULL", is_unary=True)

    @staticmethod
    def in_(col: str, values: Iterable[Any]) -> Condition:
        """`col IN (...)`; an empty `values` matches no row."""

        return Condition(col, "IN", values=list(values))

    @staticmethod
    def in_select(
        col: str,
        table: str,
        select_col: str,
        *where: WhereExpression | Sequence[WhereExpression],
    ) -> SubqueryCondition:
        """`col IN (SELECT select_col FROM table WHERE <where joined by AND>)`."""

        return SubqueryCondition(col, table, select_col, _flatten(where))

    @staticmethod
    def and_(*items: WhereExpression | Sequence[WhereExpression]) -> ConditionGroup:
        return ConditionGroup("AND", _flatten(items))

    @staticmethod
    def or_(*items: WhereExpression | Sequence[WhereExpression]) -> ConditionGroup:
        return ConditionGroup("OR", _flatten(items))

    @staticmethod
    def not_(item: WhereExpression) -> NotCondition:
        return NotCondition(ensure_expression(item))


@dataclass(frozen=True)
class OrderBy:
    col: str
    desc: bool = False


@dataclass(frozen=True)
class Criteria:
    """WHERE expressions plus ordering and paging for one SELECT.

    Expressions in `where` are joined with `AND`.
    """

    where: tuple[WhereExpression, ...] = ()
    order_by: tuple[OrderBy, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None

    def and_where(self, *items: WhereExpression) -> "Criteria":
        """Return a copy with `items` appended to the WHERE expressions."""

        added = tuple(ensure_expression(item) for item in items)
        return replace(self, where=self.where + added)

    def ordered(self, *order_by: OrderBy) -> "Criteria":
        return replace(self, order_by=self.order_by + order_by)

    def has_order(self) -> bool:
        return bool(self.order_by)

    def fingerprint(self) -> str:
        """Stable text of the WHERE part, used for loop detection.

        Paging and ordering are left out so that two reads of the same rows
        compare equal.
        """

        return " AND ".join(map(_fingerprint, self.where))


WhereInput = Optional[Criteria | WhereExpression | Sequence[WhereExpression]]


def to_criteria(where: WhereInput) -> Criteria:
    """Normalize any accepted `where` argument into a `Criteria`."""

    if isinstance(where, Criteria):
        return where
    if where is None:
        return Criteria()
    if isinstance(where, EXPRESSION_TYPES):
        return Criteria(where=(where,))
    return Criteria(where=tuple(ensure_expression(item) for item in where))


def _fingerprint(item: WhereExpression) -> str:
    if isinstance(item, ConditionGroup):
        return "(" + f" {item.operator} ".join(map(_fingerprint, item.items)) + ")"
    if isinstance(item, NotCondition):
        return f"NOT ({_fingerprint(item.item)})"
    if isinstance(item, SubqueryCondition):
        inner = " AND ".join(map(_fingerprint, item.where))
        return f"{item.col} IN (SELECT {item.select_col} FROM {item.table} WHERE {inner})"
    if item.is_unary:
        return f"{item.col} {item.op}"
    if item.op == "IN":
        return f"{item.col} IN {sorted(str(value) for value in item.values or ())}"
    return f"{item.col} {item.op} {item.value!r}"
