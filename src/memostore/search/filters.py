"""Filter AST — typed predicate expressions compiled to SQLAlchemy clauses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_ as sa_and
from sqlalchemy import or_ as sa_or

from memostore.exceptions import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Table

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class FilterOp(Enum):
    """Comparison operators for predicate filtering."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"
    CONTAINS = "contains"


class LogicalOp(Enum):
    """Logical combinators for grouping filter expressions."""

    AND = "and"
    OR = "or"


# ------------------------------------------------------------------
# AST nodes
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Comparison:
    """A single field comparison (e.g. ``field == value``).

    Attributes:
        field: Column name.
        op: Comparison operator.
        value: Value to compare against.  For ``EXISTS``, this is a bool.
    """

    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True, slots=True)
class LogicalGroup:
    """A logical combination of filter expressions.

    Attributes:
        op: Logical operator (AND / OR).
        expressions: Child expressions to combine.
    """

    op: LogicalOp
    expressions: list[FilterExpression]


FilterExpression = Comparison | LogicalGroup
"""Union type for the filter AST: either a leaf :class:`Comparison` or a
:class:`LogicalGroup` combining sub-expressions."""


# ------------------------------------------------------------------
# Builder helpers
# ------------------------------------------------------------------


def eq(field: str, value: Any) -> Comparison:
    """``field == value``."""
    return Comparison(field=field, op=FilterOp.EQ, value=value)


def ne(field: str, value: Any) -> Comparison:
    """``field != value``."""
    return Comparison(field=field, op=FilterOp.NE, value=value)


def gt(field: str, value: Any) -> Comparison:
    """``field > value``."""
    return Comparison(field=field, op=FilterOp.GT, value=value)


def gte(field: str, value: Any) -> Comparison:
    """``field >= value``."""
    return Comparison(field=field, op=FilterOp.GTE, value=value)


def lt(field: str, value: Any) -> Comparison:
    """``field < value``."""
    return Comparison(field=field, op=FilterOp.LT, value=value)


def lte(field: str, value: Any) -> Comparison:
    """``field <= value``."""
    return Comparison(field=field, op=FilterOp.LTE, value=value)


def in_(field: str, values: list[Any]) -> Comparison:
    """``field IN values``."""
    return Comparison(field=field, op=FilterOp.IN, value=values)


def not_in(field: str, values: list[Any]) -> Comparison:
    """``field NOT IN values``."""
    return Comparison(field=field, op=FilterOp.NOT_IN, value=values)


def exists(field: str, *, exists: bool = True) -> Comparison:
    """``field IS NOT NULL`` (or ``IS NULL`` if ``exists=False``)."""
    return Comparison(field=field, op=FilterOp.EXISTS, value=exists)


def contains(field: str, text: str) -> Comparison:
    """Substring match: ``field`` contains *text* (LIKE wildcards are escaped)."""
    return Comparison(field=field, op=FilterOp.CONTAINS, value=text)


def and_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with AND."""
    return LogicalGroup(op=LogicalOp.AND, expressions=list(exprs))


def or_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with OR."""
    return LogicalGroup(op=LogicalOp.OR, expressions=list(exprs))


def date_range(field: str, start: int | None = None, end: int | None = None) -> FilterExpression | None:
    """Inclusive range on an epoch-millisecond *field*.

    Returns ``None`` when neither bound is given so callers can pass the
    result straight to :func:`combine`.
    """
    parts: list[FilterExpression] = []
    if start is not None:
        parts.append(gte(field, start))
    if end is not None:
        parts.append(lte(field, end))
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return and_(*parts)


def combine(*exprs: FilterExpression | None) -> FilterExpression | None:
    """AND together the non-None expressions; ``None`` if there are none."""
    present = [e for e in exprs if e is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return and_(*present)


# ------------------------------------------------------------------
# Compiler: filter AST to a SQLAlchemy WHERE clause
# ------------------------------------------------------------------


def compile_sqlalchemy(expr: FilterExpression, table: Table) -> ColumnElement[bool]:
    """Compile a ``FilterExpression`` against *table*'s columns.

    Values are always bound parameters.  Raises :class:`ValidationError`
    for fields that are not columns of *table*.

    Examples::

        compile_sqlalchemy(eq("uid", "u1"), memos)
        # memos.uid = :uid_1

        compile_sqlalchemy(and_(eq("uid", "u1"), contains("content", "50%")), memos)
        # memos.uid = :uid_1 AND memos.content LIKE '%' || :content_1 || '%' ESCAPE '/'
    """
    if isinstance(expr, LogicalGroup):
        if not expr.expressions:
            msg = "Logical filter group must contain at least one expression"
            raise ValidationError(msg)
        children = [compile_sqlalchemy(child, table) for child in expr.expressions]
        return sa_and(*children) if expr.op == LogicalOp.AND else sa_or(*children)

    if expr.field not in table.c:
        msg = f"Unknown filter field {expr.field!r} for collection {table.name!r}"
        raise ValidationError(msg)
    column = table.c[expr.field]

    if expr.op == FilterOp.EQ:
        return column.is_(None) if expr.value is None else column == expr.value
    if expr.op == FilterOp.NE:
        return column.is_not(None) if expr.value is None else column != expr.value
    if expr.op == FilterOp.GT:
        return column > expr.value
    if expr.op == FilterOp.GTE:
        return column >= expr.value
    if expr.op == FilterOp.LT:
        return column < expr.value
    if expr.op == FilterOp.LTE:
        return column <= expr.value
    if expr.op == FilterOp.IN:
        return column.in_(list(expr.value))
    if expr.op == FilterOp.NOT_IN:
        return column.not_in(list(expr.value))
    if expr.op == FilterOp.EXISTS:
        return column.is_not(None) if expr.value else column.is_(None)
    # CONTAINS
    return column.contains(str(expr.value), autoescape=True)
