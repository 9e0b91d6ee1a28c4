"""EmbeddedStore — async SQLite store with native vector distance ranking."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import MetaData, Table, event, inspect, text
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from memostore.exceptions import StoreDuplicateError, StoreError, StoreTimeoutError
from memostore.store.collection import Collection
from memostore.utils import cosine_distance

if TYPE_CHECKING:
    from collections.abc import Coroutine, Sequence

    from sqlalchemy import Executable
    from sqlalchemy.ext.asyncio import AsyncEngine

    from memostore.config import StoreConfig

logger = logging.getLogger(__name__)

DB_FILENAME = "memostore.db"


def is_duplicate_error(exc: BaseException) -> bool:
    """Return True if *exc* is a store error reporting an already-exists condition.

    Only :class:`StoreDuplicateError`, a database error, or a
    :class:`StoreError` wrapping one qualify.  Other exceptions never do,
    whatever their message says.
    """
    if isinstance(exc, StoreDuplicateError):
        return True
    if isinstance(exc, StoreError):
        exc = exc.__cause__
    if not isinstance(exc, SQLAlchemyError):
        return False
    message = str(exc).lower()
    return "already exists" in message or "duplicate" in message


def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    """Register SQL functions and pragmas on every new DB-API connection."""
    dbapi_connection.create_function("vector_distance", 2, cosine_distance, deterministic=True)
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


class EmbeddedStore:
    """Embedded, file-backed store for memos, caches and migration records.

    Wraps an async SQLAlchemy engine on a SQLite file inside *path*.
    Nearest-neighbour ranking is delegated to SQLite through the
    ``vector_distance`` function registered on each connection.  The store
    offers no multi-statement transactions to callers: every
    :class:`Collection` operation commits on its own.

    Usage::

        store = EmbeddedStore("./data")
        await store.connect()
        memos = await store.open_collection("memos")
        rows = await memos.query(eq("uid", "u1"))
    """

    def __init__(
        self,
        path: str | Path,
        *,
        storage_type: str = "local",
        query_timeout: float = 10.0,
        echo: bool = False,
    ) -> None:
        self._path = Path(path)
        self._storage_type = storage_type
        self._query_timeout = query_timeout
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._collections: dict[str, Collection] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_config(cls, config: StoreConfig) -> EmbeddedStore:
        """Build a store from a :class:`~memostore.config.StoreConfig`."""
        return cls(
            config.path,
            storage_type=config.storage_type,
            query_timeout=config.query_timeout,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Create the data directory and the engine. Idempotent."""
        if self._engine is not None:
            return
        self._path.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(f"sqlite+aiosqlite:///{self.db_path}", echo=self._echo)
        event.listen(engine.sync_engine, "connect", _on_connect)
        self._engine = engine
        logger.info("Embedded store connected at %s", self.db_path)

    async def close(self) -> None:
        """Wait for abandoned statements, then dispose the engine."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._collections.clear()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def engine(self) -> AsyncEngine:
        """The async engine. Raises ``StoreError`` before :meth:`connect`."""
        if self._engine is None:
            msg = "Store is not connected. Call connect() first."
            raise StoreError(msg)
        return self._engine

    @property
    def path(self) -> Path:
        """Directory holding the database file."""
        return self._path

    @property
    def db_path(self) -> Path:
        """The SQLite database file."""
        return self._path / DB_FILENAME

    @property
    def is_managed_storage(self) -> bool:
        """True when the database lives on redundant, managed storage."""
        return self._storage_type == "managed"

    @property
    def query_timeout(self) -> float:
        """Seconds before a statement raises ``StoreTimeoutError``."""
        return self._query_timeout

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def table_names(self) -> list[str]:
        """Names of all tables in the store."""
        async with self.engine.connect() as conn:
            return await conn.run_sync(lambda c: inspect(c).get_table_names())

    async def has_collection(self, name: str) -> bool:
        """Return whether table *name* exists."""
        return name in await self.table_names()

    async def open_collection(self, name: str) -> Collection:
        """Return the (cached) :class:`Collection` for table *name*."""
        collection = self._collections.get(name)
        if collection is None:
            collection = Collection(self, await self.reflect(name))
            self._collections[name] = collection
        return collection

    async def create_collection(self, table: Table) -> Collection:
        """Create *table* if it does not exist and return its collection."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(lambda c: table.create(c, checkfirst=True))
        except SQLAlchemyError as exc:
            raise _translate(exc, f"create collection {table.name}") from exc
        self._collections.pop(table.name, None)
        return await self.open_collection(table.name)

    async def create_index(self, index_name: str, table_name: str, columns: Sequence[str]) -> None:
        """Create a scalar index if it does not already exist."""
        quote = self.engine.dialect.identifier_preparer.quote
        cols = ", ".join(quote(c) for c in columns)
        ddl = f"CREATE INDEX IF NOT EXISTS {quote(index_name)} ON {quote(table_name)} ({cols})"
        await self.execute_ddl(text(ddl))

    async def reflect(self, name: str) -> Table:
        """Reflect table *name* from the database."""
        try:
            async with self.engine.connect() as conn:
                return await conn.run_sync(lambda c: Table(name, MetaData(), autoload_with=c))
        except NoSuchTableError as exc:
            msg = f"Collection {name!r} does not exist"
            raise StoreError(msg) from exc
        except SQLAlchemyError as exc:
            raise _translate(exc, f"open collection {name}") from exc

    # ------------------------------------------------------------------
    # Statement execution (used by Collection)
    # ------------------------------------------------------------------

    async def fetch_all(self, stmt: Executable, *, what: str) -> list[dict[str, Any]]:
        """Run a SELECT and return rows as dicts."""

        async def _run() -> list[dict[str, Any]]:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return [dict(row._mapping) for row in result]

        return await self._guard(_run(), what=what)

    async def execute(
        self,
        stmt: Executable,
        params: list[dict[str, Any]] | None = None,
        *,
        what: str,
    ) -> int:
        """Run a DML statement in its own transaction. Returns the rowcount."""

        async def _run() -> int:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt, params) if params is not None else await conn.execute(stmt)
                return max(result.rowcount or 0, 0)

        return await self._guard(_run(), what=what)

    async def execute_ddl(self, stmt: Executable) -> None:
        """Run a DDL statement in its own transaction."""

        async def _run() -> None:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)

        await self._guard(_run(), what="ddl")

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_snapshot(self, dest: str | Path) -> Path:
        """Write a consistent copy of the database to *dest* (must not exist)."""
        dest_path = Path(dest)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self.engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                await conn.execute(text("VACUUM INTO :dest"), {"dest": str(dest_path)})
        except SQLAlchemyError as exc:
            raise _translate(exc, "export snapshot") from exc
        return dest_path

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _guard(self, coro: Coroutine[Any, Any, Any], *, what: str) -> Any:
        """Await *coro* with the query timeout, translating store errors.

        On timeout the statement keeps running in the background; only the
        caller gives up on it.
        """
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.wait_for(asyncio.shield(task), self._query_timeout)
        except TimeoutError as exc:
            self._pending.add(task)
            task.add_done_callback(self._forget)
            msg = f"{what} timed out after {self._query_timeout}s"
            raise StoreTimeoutError(msg) from exc
        except SQLAlchemyError as exc:
            raise _translate(exc, what) from exc

    def _forget(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Abandoned store statement failed: %s", task.exception())


def _translate(exc: SQLAlchemyError, what: str) -> StoreError:
    if is_duplicate_error(exc):
        return StoreDuplicateError(f"{what}: {exc}")
    return StoreError(f"{what} failed: {exc}")
