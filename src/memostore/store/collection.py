"""Collection — row-level operations on one table of the embedded store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, insert, literal, select, text, update
from sqlalchemy.exc import OperationalError

from memostore.exceptions import StoreError, ValidationError
from memostore.search.filters import compile_sqlalchemy
from memostore.utils import DISTANCE_KEY, pack_vector

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import Select, Table
    from sqlalchemy.types import TypeEngine

    from memostore.search.filters import FilterExpression
    from memostore.store._store import EmbeddedStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ColumnDef:
    """An additive column definition.

    Attributes:
        name: Column name.
        type_: SQLAlchemy type of the new column.
        default: Literal default applied to existing rows (``None`` → NULL).
    """

    name: str
    type_: TypeEngine[Any]
    default: Any = None


class Collection:
    """Row operations against a single reflected table.

    Instances are obtained from :meth:`EmbeddedStore.open_collection` and
    cached there.  Rows are plain dicts keyed by column name.  Every
    statement runs through the store's timeout guard.
    """

    def __init__(self, store: EmbeddedStore, table: Table) -> None:
        self._store = store
        self._table = table

    @property
    def name(self) -> str:
        """Table name."""
        return self._table.name

    @property
    def table(self) -> Table:
        """The reflected SQLAlchemy table."""
        return self._table

    @property
    def column_names(self) -> list[str]:
        """Names of the table's columns, in definition order."""
        return [c.name for c in self._table.columns]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        filter: FilterExpression | None = None,  # noqa: A002
        *,
        columns: Sequence[str] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows matching *filter*."""
        if columns is not None:
            stmt: Select[Any] = select(*(self._column(c) for c in columns))
        else:
            stmt = select(self._table)
        stmt = self._where(stmt, filter)
        if order_by is not None:
            col = self._column(order_by)
            stmt = stmt.order_by(col.desc() if descending else col.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._store.fetch_all(stmt, what=f"query {self.name}")

    async def first(self, filter: FilterExpression | None = None) -> dict[str, Any] | None:  # noqa: A002
        """Return the first row matching *filter*, or None."""
        rows = await self.query(filter, limit=1)
        return rows[0] if rows else None

    async def count(self, filter: FilterExpression | None = None) -> int:  # noqa: A002
        """Return the number of rows matching *filter*."""
        stmt = self._where(select(func.count()).select_from(self._table), filter)
        rows = await self._store.fetch_all(stmt, what=f"count {self.name}")
        return int(next(iter(rows[0].values()))) if rows else 0

    async def nearest(
        self,
        vector_column: str,
        vector: Sequence[float],
        *,
        k: int,
        filter: FilterExpression | None = None,  # noqa: A002
    ) -> list[dict[str, Any]]:
        """Return up to *k* rows ordered by ascending cosine distance to *vector*.

        Ranking and predicate filtering both run inside the store via the
        ``vector_distance`` SQL function.  Each row carries its distance
        under :data:`DISTANCE_KEY`.  Rows without a vector, or whose vector
        has a different dimension from *vector*, are skipped before the limit.
        """
        if k <= 0:
            return []
        col = self._column(vector_column)
        raw = func.vector_distance(col, pack_vector(vector))
        distance = raw.label(DISTANCE_KEY)
        stmt = select(self._table, distance).where(col.is_not(None), raw.is_not(None))
        stmt = self._where(stmt, filter)
        stmt = stmt.order_by(distance.asc()).limit(k)
        return await self._store.fetch_all(stmt, what=f"nearest {self.name}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, rows: Sequence[dict[str, Any]]) -> int:
        """Insert *rows*. Returns the number of rows inserted."""
        if not rows:
            return 0
        known = set(self.column_names)
        for row in rows:
            unknown = set(row) - known
            if unknown:
                msg = f"Unknown columns for {self.name!r}: {sorted(unknown)}"
                raise ValidationError(msg)
        await self._store.execute(insert(self._table), list(rows), what=f"add to {self.name}")
        return len(rows)

    async def update(
        self,
        filter: FilterExpression | None,  # noqa: A002
        values: dict[str, Any],
    ) -> int:
        """Set *values* on rows matching *filter*. Returns the rowcount."""
        for key in values:
            self._column(key)
        stmt = self._where(update(self._table), filter).values(**values)
        return await self._store.execute(stmt, what=f"update {self.name}")

    async def delete(self, filter: FilterExpression | None) -> int:  # noqa: A002
        """Delete rows matching *filter*. Returns the rowcount."""
        stmt = self._where(delete(self._table), filter)
        return await self._store.execute(stmt, what=f"delete from {self.name}")

    async def add_columns(self, defs: Sequence[ColumnDef]) -> list[str]:
        """Add columns with literal defaults.  Returns the names actually added.

        A column that already exists is skipped, so re-running the same
        additive change after a partial failure is a no-op.
        """
        dialect = self._store.engine.dialect
        quote = dialect.identifier_preparer.quote
        added: list[str] = []
        for col in defs:
            ddl = f"ALTER TABLE {quote(self.name)} ADD COLUMN {quote(col.name)} {col.type_.compile(dialect=dialect)}"
            if col.default is not None:
                default_sql = literal(col.default, type_=col.type_).compile(
                    dialect=dialect, compile_kwargs={"literal_binds": True}
                )
                ddl += f" DEFAULT {default_sql}"
            try:
                await self._store.execute_ddl(text(ddl))
            except StoreError as exc:
                if isinstance(exc.__cause__, OperationalError) and _is_duplicate_column(exc.__cause__):
                    logger.debug("Column %s.%s already exists, skipping", self.name, col.name)
                    continue
                raise
            added.append(col.name)
        self._table = await self._store.reflect(self.name)
        return added

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _column(self, name: str) -> Any:
        if name not in self._table.c:
            msg = f"Unknown column {name!r} for collection {self.name!r}"
            raise ValidationError(msg)
        return self._table.c[name]

    def _where(self, stmt: Any, filter: FilterExpression | None) -> Any:  # noqa: A002
        if filter is None:
            return stmt
        return stmt.where(compile_sqlalchemy(filter, self._table))


def _is_duplicate_column(exc: OperationalError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return "duplicate column" in message or "already exists" in message
