"""EmbeddingCache — content-addressed embedding cache in front of a provider."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from memostore.exceptions import CacheError, ProviderError, ProviderTimeoutError, StoreError, ValidationError
from memostore.models import MultimodalEmbeddingCache, TextEmbeddingCache
from memostore.search.content import Content, Modality, signature_hash
from memostore.search.filters import and_, eq
from memostore.utils import now_ms, pack_vector, unpack_vector

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from memostore.search.providers import EmbeddingProviderClient, EmbeddingResult
    from memostore.store import Collection, EmbeddedStore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TABLE = MultimodalEmbeddingCache.__tablename__
TEXT_CACHE_TABLE = TextEmbeddingCache.__tablename__

_CacheKey = tuple[str, str]
"""(content_hash, modality_type); the model hash is fixed per cache."""


def _key_modality(override: Modality | str | None, resolved: Modality) -> Modality:
    if override is None:
        return resolved
    try:
        return Modality(override)
    except ValueError as exc:
        msg = f"Unknown modality: {override!r}"
        raise ValidationError(msg) from exc


class EmbeddingCache:
    """Maps ``(model signature, content, modality)`` to a stored vector.

    A hit never touches the provider.  Misses go to the provider in a
    single call, then are persisted one row at a time.  The cache is an
    accelerator only: read and write failures are logged and the call
    proceeds as if the entry were absent.  Provider failures always
    propagate.

    The provider call and cache write run in a shielded task.  When the
    caller's *timeout* expires it receives :class:`ProviderTimeoutError`
    while the task runs to completion and still writes the cache.

    Usage::

        cache = EmbeddingCache(store, MultimodalEmbeddingClient(api_key=...))
        vector = await cache.compute_or_fetch("hello world")
        vectors = await cache.compute_or_fetch_many([Content(image=url), "caption"])
    """

    def __init__(
        self,
        store: EmbeddedStore,
        provider: EmbeddingProviderClient,
        *,
        collection: str = DEFAULT_CACHE_TABLE,
        timeout: float | None = 30.0,
    ) -> None:
        self._store = store
        self._provider = provider
        self._collection_name = collection
        self._timeout = timeout
        self._model_hash = signature_hash(provider.signature)
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def provider(self) -> EmbeddingProviderClient:
        return self._provider

    @property
    def model_hash(self) -> str:
        """SHA-256 of the provider's model signature."""
        return self._model_hash

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def compute_or_fetch(
        self,
        content: Content | str,
        modality: Modality | str | None = None,
    ) -> list[float]:
        """Return the embedding of *content*, calling the provider only on a miss.

        *modality* overrides the resolved modality in the cache key.
        """
        item = Content.coerce(content)
        resolved = self._validate(item)
        key = (item.content_hash(), _key_modality(modality, resolved).value)

        cached = await self._read_swallowing(key)
        if cached is not None:
            logger.debug("Embedding cache hit (%s)", key[1])
            return cached

        logger.debug("Embedding cache miss (%s), calling provider", key[1])
        vectors = await self._bounded(self._compute_and_store([item], [key]))
        return vectors[0]

    async def compute_or_fetch_many(self, contents: Sequence[Content | str]) -> list[list[float]]:
        """Embed *contents*, preserving input order.

        All items are validated before any I/O.  Cached items are served
        from the store and the rest go to the provider in one call.
        """
        items = [Content.coerce(c) for c in contents]
        if not items:
            return []
        keys = [(item.content_hash(), self._validate(item).value) for item in items]

        results: list[list[float] | None] = []
        missing: list[int] = []
        for i, key in enumerate(keys):
            cached = await self._read_swallowing(key)
            results.append(cached)
            if cached is None:
                missing.append(i)

        if missing:
            logger.debug("Embedding cache miss for %d of %d items", len(missing), len(items))
            computed = await self._bounded(
                self._compute_and_store([items[i] for i in missing], [keys[i] for i in missing])
            )
            for i, vector in zip(missing, computed, strict=True):
                results[i] = vector
        else:
            logger.debug("Embedding cache hit for all %d items", len(items))

        return [r for r in results if r is not None]

    async def wait_idle(self) -> None:
        """Wait for abandoned provider calls and cache writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _validate(self, item: Content) -> Modality:
        modality = item.modality
        if modality is Modality.MULTI_IMAGES and not self._provider.supports_multi_images:
            msg = f"Model {self._provider.model_name} does not support multi_images input"
            raise ValidationError(msg)
        return modality

    async def _bounded(self, work: Awaitable[list[list[float]]]) -> list[list[float]]:
        task = asyncio.ensure_future(work)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)
        try:
            return await asyncio.wait_for(asyncio.shield(task), self._timeout)
        except TimeoutError as exc:
            msg = f"Embedding provider did not respond within {self._timeout}s"
            raise ProviderTimeoutError(msg) from exc

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Embedding task finished with error: %s", task.exception())

    async def _compute_and_store(self, items: list[Content], keys: list[_CacheKey]) -> list[list[float]]:
        results = await self._provider.embed(items)
        vectors = _correlate(results, len(items))
        for key, vector in zip(keys, vectors, strict=True):
            try:
                await self._write(key, vector)
            except CacheError as exc:
                logger.warning("Embedding cache write skipped: %s", exc)
        return vectors

    async def _read_swallowing(self, key: _CacheKey) -> list[float] | None:
        try:
            return await self._read(key)
        except CacheError as exc:
            logger.warning("Embedding cache read skipped: %s", exc)
            return None

    async def _collection(self) -> Collection:
        return await self._store.open_collection(self._collection_name)

    async def _read(self, key: _CacheKey) -> list[float] | None:
        content_hash, modality = key
        try:
            collection = await self._collection()
            row = await collection.first(
                and_(
                    eq("model_hash", self._model_hash),
                    eq("content_hash", content_hash),
                    eq("modality_type", modality),
                )
            )
        except StoreError as exc:
            msg = f"read from {self._collection_name} failed: {exc}"
            raise CacheError(msg) from exc
        if row is None:
            return None
        return unpack_vector(row["embedding"])

    async def _write(self, key: _CacheKey, vector: list[float]) -> None:
        content_hash, modality = key
        try:
            collection = await self._collection()
            await collection.add(
                [
                    {
                        "model_hash": self._model_hash,
                        "content_hash": content_hash,
                        "modality_type": modality,
                        "embedding": pack_vector(vector),
                        "created_at": now_ms(),
                    }
                ]
            )
        except StoreError as exc:
            msg = f"write to {self._collection_name} failed: {exc}"
            raise CacheError(msg) from exc


def _correlate(results: list[EmbeddingResult], expected: int) -> list[list[float]]:
    """Order provider results by request index, falling back to position."""
    by_index = {r.index: r for r in results}
    vectors: list[list[float]] = []
    for position in range(expected):
        result = by_index.get(position)
        if result is None and position < len(results):
            result = results[position]
        if result is None:
            msg = f"Provider returned no embedding for item {position}"
            raise ProviderError(msg)
        vectors.append(result.embedding)
    return vectors
