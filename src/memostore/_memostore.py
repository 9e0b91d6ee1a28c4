"""MemoStore — async facade wiring store, migrations, cache, search and backups."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from memostore.backup import BackupManager, create_storage_adapter
from memostore.config import MemoStoreConfig
from memostore.exceptions import MigrationError
from memostore.memos import MemoService
from memostore.migrations import ALL_MIGRATIONS, MigrationRunner
from memostore.search import EmbeddingCache, MultimodalEmbeddingClient, VectorSearchEngine
from memostore.search.cache import DEFAULT_CACHE_TABLE
from memostore.store import EmbeddedStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from memostore.backup import BackupSnapshot, BackupStatus, StorageAdapter
    from memostore.events import BackupEventBus
    from memostore.migrations import Migration, MigrationResult
    from memostore.search import EmbeddingProviderClient, FilterExpression, Page, SearchHit
    from memostore.search._engine import Query

logger = logging.getLogger(__name__)


class MemoStore:
    """Embedded memo store with semantic search and automatic backups.

    :meth:`open` runs the startup sequence: connect the store, apply and
    validate migrations (nothing else touches the store until this
    succeeds), then build the embedding cache, search engine and backup
    manager.

    Usage::

        async with await MemoStore.open(MemoStoreConfig.from_env()) as ms:
            memo = await ms.create_memo("u1", "hello world")
            hits = await ms.search("u1", "greeting", similarity_threshold=0.8)
    """

    def __init__(
        self,
        *,
        store: EmbeddedStore,
        cache: EmbeddingCache,
        engine: VectorSearchEngine,
        backup: BackupManager,
        memos: MemoService,
        migration_results: list[MigrationResult] | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._engine = engine
        self._backup = backup
        self._memos = memos
        self._migration_results = migration_results or []
        self._closed = False

    @classmethod
    async def open(
        cls,
        config: MemoStoreConfig | None = None,
        *,
        provider: EmbeddingProviderClient | None = None,
        storage: StorageAdapter | None = None,
        events: BackupEventBus | None = None,
        migrations: Sequence[Migration] | None = None,
        cache_collection: str = DEFAULT_CACHE_TABLE,
    ) -> MemoStore:
        """Connect, migrate, and wire all components."""
        config = config if config is not None else MemoStoreConfig.from_env()
        store = EmbeddedStore.from_config(config.store)
        await store.connect()
        owned_provider: EmbeddingProviderClient | None = None
        try:
            runner = MigrationRunner(migrations if migrations is not None else ALL_MIGRATIONS)
            results = await runner.apply(store)
            valid, errors = await runner.validate(store)
            if not valid:
                msg = f"Schema validation failed after migrations: {'; '.join(errors)}"
                raise MigrationError(msg)
            if provider is None:
                provider = owned_provider = MultimodalEmbeddingClient.from_config(config.embedding)
            cache = EmbeddingCache(store, provider, collection=cache_collection, timeout=config.embedding.timeout)
            engine = VectorSearchEngine(store, cache)

            backup = BackupManager(
                store,
                storage if storage is not None else create_storage_adapter(config.backup),
                config.backup,
                events=events,
            )
            backup.initialize()
        except BaseException:
            if owned_provider is not None:
                await owned_provider.close()
            await store.close()
            raise

        logger.info("MemoStore opened at %s", store.path)
        return cls(
            store=store,
            cache=cache,
            engine=engine,
            backup=backup,
            memos=MemoService(store, cache, backup),
            migration_results=results,
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def store(self) -> EmbeddedStore:
        return self._store

    @property
    def cache(self) -> EmbeddingCache:
        return self._cache

    @property
    def engine(self) -> VectorSearchEngine:
        return self._engine

    @property
    def backup(self) -> BackupManager:
        return self._backup

    @property
    def migration_results(self) -> list[MigrationResult]:
        return list(self._migration_results)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def create_memo(self, uid: str, content: str, **fields: Any) -> dict[str, Any]:
        return await self._memos.create_memo(uid, content, **fields)

    async def update_memo(self, uid: str, memo_id: str, **changes: Any) -> dict[str, Any]:
        return await self._memos.update_memo(uid, memo_id, **changes)

    async def delete_memo(self, uid: str, memo_id: str) -> None:
        await self._memos.delete_memo(uid, memo_id)

    async def get_memo(self, uid: str, memo_id: str) -> dict[str, Any]:
        return await self._memos.get_memo(uid, memo_id)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def search(
        self,
        uid: str,
        query: Query,
        *,
        filter: FilterExpression | None = None,  # noqa: A002
        top_k: int = 10,
        similarity_threshold: float | None = None,
    ) -> list[SearchHit]:
        return await self._engine.search(
            uid, query, filter=filter, top_k=top_k, similarity_threshold=similarity_threshold
        )

    async def list_memos(
        self,
        uid: str,
        *,
        filter: FilterExpression | None = None,  # noqa: A002
        sort_by: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: int = 20,
    ) -> Page:
        return await self._engine.list(
            uid, filter=filter, sort_by=sort_by, descending=descending, offset=offset, limit=limit
        )

    async def related(
        self,
        uid: str,
        memo_id: str,
        *,
        top_k: int = 5,
        similarity_threshold: float | None = None,
    ) -> list[SearchHit]:
        return await self._engine.related(uid, memo_id, top_k=top_k, similarity_threshold=similarity_threshold)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def force_backup(self) -> BackupSnapshot:
        return await self._backup.force_backup()

    def backup_status(self) -> BackupStatus:
        return self._backup.status()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Wait for background work, then release the provider and the store."""
        if self._closed:
            return
        self._closed = True
        await self._backup.close()
        await self._cache.wait_idle()
        await self._cache.provider.close()
        await self._store.close()
        logger.info("MemoStore closed")

    async def __aenter__(self) -> MemoStore:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
