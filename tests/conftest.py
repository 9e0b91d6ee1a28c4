"""Shared fixtures for memostore tests."""

from __future__ import annotations

import asyncio
import hashlib
import math
from typing import TYPE_CHECKING, Any

import pytest

from memostore.migrations import ALL_MIGRATIONS, MigrationRunner
from memostore.search.content import Content, model_signature
from memostore.search.providers import EmbeddingResult
from memostore.store import EmbeddedStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from pathlib import Path


class FakeProvider:
    """Deterministic provider: vectors derived from a hash of the content.

    Records every call so tests can assert on network traffic.  Texts in
    *fixed* map to the given vectors instead.
    """

    def __init__(
        self,
        *,
        dimension: int = 8,
        supports_multi_images: bool = True,
        fixed: dict[str, list[float]] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self._dimension = dimension
        self._supports_multi_images = supports_multi_images
        self._fixed = fixed or {}
        self._delay = delay
        self.error = error
        self.calls: list[list[Content]] = []
        self.closed = False

    @property
    def model_name(self) -> str:
        return "fake-embedding"

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def signature(self) -> dict[str, Any]:
        return model_signature("fake-embedding", output_type="dense", dimension=self._dimension)

    @property
    def supports_multi_images(self) -> bool:
        return self._supports_multi_images

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def embed(self, contents: list[Content]) -> list[EmbeddingResult]:
        self.calls.append(list(contents))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self.error is not None:
            raise self.error
        return [EmbeddingResult(index=i, embedding=self.vector_for(c)) for i, c in enumerate(contents)]

    def vector_for(self, content: Content) -> list[float]:
        if content.text is not None and content.text in self._fixed:
            return list(self._fixed[content.text])
        digest = hashlib.sha256(content.canonical().encode()).digest()
        raw = [(digest[i % len(digest)] - 127.5) / 127.5 for i in range(self._dimension)]
        norm = math.sqrt(sum(v * v for v in raw)) or 1.0
        return [v / norm for v in raw]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    """Factory for providers with non-default settings."""
    return FakeProvider


@pytest.fixture
async def store(tmp_path: Path) -> AsyncIterator[EmbeddedStore]:
    """Connected store in a temporary directory, no tables."""
    s = EmbeddedStore(tmp_path / "data")
    await s.connect()
    yield s
    await s.close()


@pytest.fixture
async def migrated_store(store: EmbeddedStore) -> EmbeddedStore:
    """Store with every built-in migration applied."""
    await MigrationRunner(ALL_MIGRATIONS).apply(store)
    return store
