"""EmbeddingProviderClient protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from memostore.search.content import Content


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    """One embedding returned by a provider.

    ``index`` is the position of the source item within the request.
    """

    index: int
    embedding: list[float]
    type: str | None = None


@runtime_checkable
class EmbeddingProviderClient(Protocol):
    """Protocol for remote embedding providers.

    Implementations send a batch of :class:`Content` items in one request
    and return one :class:`EmbeddingResult` per item.  Failures raise
    :class:`~memostore.exceptions.ProviderError` (timeouts
    :class:`~memostore.exceptions.ProviderTimeoutError`); implementations
    never substitute placeholder vectors.
    """

    async def embed(self, contents: list[Content]) -> list[EmbeddingResult]:
        """Embed *contents* in a single provider call."""
        ...

    @property
    def model_name(self) -> str:
        """Name of the embedding model."""
        ...

    @property
    def dimension(self) -> int:
        """Dimension of returned vectors after model resolution."""
        ...

    @property
    def signature(self) -> dict[str, Any]:
        """Configuration fields that determine the returned vectors."""
        ...

    @property
    def supports_multi_images(self) -> bool:
        """Whether ``multi_images`` content is accepted."""
        ...

    async def close(self) -> None:
        """Release the underlying HTTP client."""
        ...
