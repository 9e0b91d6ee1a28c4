"""Tests for the filter AST and its SQLAlchemy compiler."""

from __future__ import annotations

import pytest

from memostore.exceptions import ValidationError
from memostore.models import Memo
from memostore.search.filters import (
    Comparison,
    FilterOp,
    LogicalGroup,
    LogicalOp,
    and_,
    combine,
    compile_sqlalchemy,
    contains,
    date_range,
    eq,
    exists,
    gt,
    gte,
    in_,
    lt,
    lte,
    ne,
    not_in,
    or_,
)

MEMOS = Memo.__table__


def _sql(expr) -> str:
    return str(compile_sqlalchemy(expr, MEMOS))


# =========================================================================
# Builders
# =========================================================================


class TestBuilders:
    @pytest.mark.parametrize(
        ("builder", "op"),
        [
            (eq, FilterOp.EQ),
            (ne, FilterOp.NE),
            (gt, FilterOp.GT),
            (gte, FilterOp.GTE),
            (lt, FilterOp.LT),
            (lte, FilterOp.LTE),
        ],
    )
    def test_scalar_builders(self, builder, op) -> None:
        expr = builder("created_at", 5)
        assert expr == Comparison(field="created_at", op=op, value=5)

    def test_in_and_not_in(self) -> None:
        assert in_("uid", ["a", "b"]).op is FilterOp.IN
        assert not_in("uid", ["a"]).value == ["a"]

    def test_exists_default_true(self) -> None:
        assert exists("category_id").value is True
        assert exists("category_id", exists=False).value is False

    def test_logical_groups(self) -> None:
        group = or_(eq("uid", "a"), eq("uid", "b"))
        assert isinstance(group, LogicalGroup)
        assert group.op is LogicalOp.OR
        assert len(group.expressions) == 2


class TestDateRange:
    def test_no_bounds_is_none(self) -> None:
        assert date_range("created_at") is None

    def test_single_bound(self) -> None:
        assert date_range("created_at", start=10) == gte("created_at", 10)
        assert date_range("created_at", end=20) == lte("created_at", 20)

    def test_both_bounds(self) -> None:
        expr = date_range("created_at", 10, 20)
        assert expr == and_(gte("created_at", 10), lte("created_at", 20))


class TestCombine:
    def test_all_none(self) -> None:
        assert combine(None, None) is None

    def test_single_passthrough(self) -> None:
        expr = eq("uid", "a")
        assert combine(None, expr) is expr

    def test_many_anded(self) -> None:
        result = combine(eq("uid", "a"), None, eq("type", "text"))
        assert isinstance(result, LogicalGroup)
        assert result.op is LogicalOp.AND
        assert len(result.expressions) == 2


# =========================================================================
# Compiler
# =========================================================================


class TestCompileSqlalchemy:
    def test_eq_binds_parameter(self) -> None:
        sql = _sql(eq("uid", "x'; DROP TABLE memos; --"))
        assert "memos.uid = :uid_1" in sql
        assert "DROP" not in sql

    def test_eq_none_is_null_check(self) -> None:
        assert "IS NULL" in _sql(eq("category_id", None))
        assert "IS NOT NULL" in _sql(ne("category_id", None))

    def test_exists(self) -> None:
        assert "IS NOT NULL" in _sql(exists("source"))
        assert "IS NULL" in _sql(exists("source", exists=False))

    def test_in(self) -> None:
        assert "IN" in _sql(in_("uid", ["a", "b"]))
        assert "NOT IN" in _sql(not_in("uid", ["a", "b"]))

    def test_contains_uses_like(self) -> None:
        assert "LIKE" in _sql(contains("content", "50%"))

    def test_and_or(self) -> None:
        sql = _sql(and_(eq("uid", "a"), or_(gt("created_at", 1), lt("created_at", 0))))
        assert " AND " in sql
        assert " OR " in sql

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError, match="no_such_column"):
            compile_sqlalchemy(eq("no_such_column", 1), MEMOS)

    def test_empty_group_rejected(self) -> None:
        with pytest.raises(ValidationError):
            compile_sqlalchemy(and_(), MEMOS)
