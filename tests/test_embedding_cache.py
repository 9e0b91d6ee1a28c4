"""Tests for Content, model signatures and EmbeddingCache."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from memostore.exceptions import ProviderError, ProviderTimeoutError, ValidationError
from memostore.search.cache import DEFAULT_CACHE_TABLE, TEXT_CACHE_TABLE, EmbeddingCache
from memostore.search.content import Content, Modality, model_signature, signature_hash
from memostore.search.filters import eq
from memostore.search.providers import EmbeddingResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from memostore.store import EmbeddedStore
    from tests.conftest import FakeProvider


class ReversingProvider:
    """Returns results in reverse order, relying on ``index`` for correlation."""

    def __init__(self, inner: FakeProvider) -> None:
        self.inner = inner

    def __getattr__(self, name: str):
        return getattr(self.inner, name)

    async def embed(self, contents: list[Content]) -> list[EmbeddingResult]:
        results = await self.inner.embed(contents)
        return list(reversed(results))


# =========================================================================
# Content
# =========================================================================


class TestContent:
    def test_single_field_modalities(self) -> None:
        assert Content(text="hi").modality is Modality.TEXT
        assert Content(image="http://x/a.png").modality is Modality.IMAGE
        assert Content(video="http://x/a.mp4").modality is Modality.VIDEO
        assert Content(multi_images=("a", "b")).modality is Modality.MULTI_IMAGES

    def test_mixed_fields_are_vl(self) -> None:
        assert Content(text="caption", image="http://x/a.png").modality is Modality.VL
        assert Content(image="i", video="v").modality is Modality.VL

    def test_blank_strings_count_as_absent(self) -> None:
        assert Content(text="hi", image="   ").modality is Modality.TEXT
        with pytest.raises(ValidationError):
            _ = Content(text="  ").modality

    def test_empty_content_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least one"):
            _ = Content().modality

    def test_multi_images_exclusive(self) -> None:
        with pytest.raises(ValidationError, match="multi_images"):
            _ = Content(text="x", multi_images=("a",)).modality

    def test_canonical_ignores_absent_fields(self) -> None:
        assert Content(text="hi", image="").canonical() == Content(text="hi").canonical()
        assert Content(text="hi").canonical() == '{"text":"hi"}'
        assert Content(text="hi").content_hash() != Content(image="hi").content_hash()

    def test_coerce(self) -> None:
        assert Content.coerce("hi") == Content(text="hi")
        with pytest.raises(ValidationError):
            Content.coerce(42)  # type: ignore[arg-type]


class TestModelSignature:
    def test_optional_fields_omitted(self) -> None:
        assert model_signature("m") == {"model": "m"}
        assert model_signature("m", output_type="dense", dimension=1024) == {
            "model": "m",
            "outputType": "dense",
            "dimension": 1024,
        }

    def test_hash_changes_with_dimension(self) -> None:
        a = signature_hash(model_signature("m", dimension=512))
        b = signature_hash(model_signature("m", dimension=1024))
        assert a != b
        assert a == signature_hash(model_signature("m", dimension=512))

    def test_fps_is_part_of_signature(self) -> None:
        assert signature_hash(model_signature("m", fps=1.0)) != signature_hash(model_signature("m"))


# =========================================================================
# Single-item path
# =========================================================================


class TestComputeOrFetch:
    @pytest.mark.asyncio
    async def test_second_call_is_cache_hit_and_bit_identical(
        self, migrated_store: EmbeddedStore, fake_provider: FakeProvider
    ) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)

        first = await cache.compute_or_fetch("hello world")
        second = await cache.compute_or_fetch("hello world")

        assert first == second
        assert all(a.hex() == b.hex() for a, b in zip(first, second, strict=True))
        assert fake_provider.call_count == 1

    @pytest.mark.asyncio
    async def test_persists_one_row_per_key(self, migrated_store: EmbeddedStore, fake_provider: FakeProvider) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        await cache.compute_or_fetch(Content(text="a", image="http://x/a.png"))

        rows = await (await migrated_store.open_collection(cache.collection_name)).query()
        assert len(rows) == 1
        assert rows[0]["modality_type"] == "vl"
        assert rows[0]["model_hash"] == cache.model_hash

    @pytest.mark.asyncio
    async def test_modality_override_is_part_of_key(
        self, migrated_store: EmbeddedStore, fake_provider: FakeProvider
    ) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        await cache.compute_or_fetch("same")
        await cache.compute_or_fetch("same", modality=Modality.VL)
        assert fake_provider.call_count == 2

    @pytest.mark.asyncio
    async def test_unknown_modality_override_rejected(
        self, migrated_store: EmbeddedStore, fake_provider: FakeProvider
    ) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        with pytest.raises(ValidationError, match="Unknown modality"):
            await cache.compute_or_fetch("same", modality="hologram")
        assert fake_provider.call_count == 0

    @pytest.mark.asyncio
    async def test_different_model_signature_misses(
        self, migrated_store: EmbeddedStore, make_provider: Callable[..., FakeProvider]
    ) -> None:
        small, large = make_provider(dimension=4), make_provider(dimension=16)
        await EmbeddingCache(migrated_store, small).compute_or_fetch("x")
        vector = await EmbeddingCache(migrated_store, large).compute_or_fetch("x")
        assert len(vector) == 16
        assert large.call_count == 1

    @pytest.mark.asyncio
    async def test_text_cache_collection(self, migrated_store: EmbeddedStore, fake_provider: FakeProvider) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider, collection=TEXT_CACHE_TABLE)
        await cache.compute_or_fetch("x")
        await cache.compute_or_fetch("x")
        assert fake_provider.call_count == 1
        assert await (await migrated_store.open_collection(TEXT_CACHE_TABLE)).count() == 1
        assert await (await migrated_store.open_collection(DEFAULT_CACHE_TABLE)).count() == 0

    @pytest.mark.asyncio
    async def test_multi_images_and_text_rejected_without_io(
        self, migrated_store: EmbeddedStore, fake_provider: FakeProvider
    ) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        with pytest.raises(ValidationError):
            await cache.compute_or_fetch(Content(text="x", multi_images=("a", "b")))
        assert fake_provider.call_count == 0

    @pytest.mark.asyncio
    async def test_multi_images_unsupported_by_model(
        self, migrated_store: EmbeddedStore, make_provider: Callable[..., FakeProvider]
    ) -> None:
        provider = make_provider(supports_multi_images=False)
        cache = EmbeddingCache(migrated_store, provider)
        with pytest.raises(ValidationError, match="multi_images"):
            await cache.compute_or_fetch(Content(multi_images=("a", "b")))
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_provider_error_propagates(
        self, migrated_store: EmbeddedStore, make_provider: Callable[..., FakeProvider]
    ) -> None:
        provider = make_provider(error=ProviderError("quota exceeded"))
        cache = EmbeddingCache(migrated_store, provider)
        with pytest.raises(ProviderError, match="quota"):
            await cache.compute_or_fetch("x")
        assert await (await migrated_store.open_collection(cache.collection_name)).count() == 0

    @pytest.mark.asyncio
    async def test_cache_failures_do_not_fail_the_call(self, store: EmbeddedStore, fake_provider: FakeProvider) -> None:
        # No cache table: every read and write fails.
        cache = EmbeddingCache(store, fake_provider)
        first = await cache.compute_or_fetch("x")
        second = await cache.compute_or_fetch("x")
        assert first == second
        assert fake_provider.call_count == 2

    @pytest.mark.asyncio
    async def test_timeout_abandons_but_still_caches(
        self, migrated_store: EmbeddedStore, make_provider: Callable[..., FakeProvider]
    ) -> None:
        provider = make_provider(delay=0.2)
        cache = EmbeddingCache(migrated_store, provider, timeout=0.02)

        with pytest.raises(ProviderTimeoutError):
            await cache.compute_or_fetch("slow")
        await cache.wait_idle()

        vector = await cache.compute_or_fetch("slow")
        assert vector == provider.vector_for(Content(text="slow"))
        assert provider.call_count == 1


# =========================================================================
# Batch path
# =========================================================================


class TestComputeOrFetchMany:
    @pytest.mark.asyncio
    async def test_one_call_with_only_misses_in_order(
        self, migrated_store: EmbeddedStore, fake_provider: FakeProvider
    ) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        await cache.compute_or_fetch("b")
        await cache.compute_or_fetch("d")
        fake_provider.calls.clear()

        items = ["a", "b", "c", "d", "e"]
        vectors = await cache.compute_or_fetch_many(items)

        assert fake_provider.call_count == 1
        assert [c.text for c in fake_provider.calls[0]] == ["a", "c", "e"]
        assert vectors == [fake_provider.vector_for(Content(text=t)) for t in items]

    @pytest.mark.asyncio
    async def test_all_hits_make_no_call(self, migrated_store: EmbeddedStore, fake_provider: FakeProvider) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        await cache.compute_or_fetch_many(["a", "b"])
        fake_provider.calls.clear()

        await cache.compute_or_fetch_many(["b", "a"])

        assert fake_provider.call_count == 0

    @pytest.mark.asyncio
    async def test_correlates_by_index(self, migrated_store: EmbeddedStore, fake_provider: FakeProvider) -> None:
        cache = EmbeddingCache(migrated_store, ReversingProvider(fake_provider))  # type: ignore[arg-type]
        vectors = await cache.compute_or_fetch_many(["x", "y", "z"])
        assert vectors == [fake_provider.vector_for(Content(text=t)) for t in ["x", "y", "z"]]

    @pytest.mark.asyncio
    async def test_empty_batch(self, migrated_store: EmbeddedStore, fake_provider: FakeProvider) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        assert await cache.compute_or_fetch_many([]) == []
        assert fake_provider.call_count == 0

    @pytest.mark.asyncio
    async def test_invalid_item_rejects_whole_batch_before_io(
        self, migrated_store: EmbeddedStore, fake_provider: FakeProvider
    ) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        with pytest.raises(ValidationError):
            await cache.compute_or_fetch_many(["ok", Content(text="x", multi_images=("a",))])
        assert fake_provider.call_count == 0
        assert await (await migrated_store.open_collection(cache.collection_name)).count() == 0

    @pytest.mark.asyncio
    async def test_each_miss_persisted(self, migrated_store: EmbeddedStore, fake_provider: FakeProvider) -> None:
        cache = EmbeddingCache(migrated_store, fake_provider)
        await cache.compute_or_fetch_many(["a", "b", "c"])
        collection = await migrated_store.open_collection(cache.collection_name)
        assert await collection.count(eq("model_hash", cache.model_hash)) == 3
