"""OpenAIEmbeddingClient — text-only embedding provider backed by OpenAI's API."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

try:
    import openai
    from openai import AsyncOpenAI

    _HAS_OPENAI = True
except ImportError:  # pragma: no cover
    _HAS_OPENAI = False

from memostore.exceptions import ProviderError, ProviderTimeoutError, ValidationError
from memostore.search.content import Modality, model_signature
from memostore.search.providers._protocol import EmbeddingResult

if TYPE_CHECKING:
    from openai import AsyncOpenAI as AsyncOpenAIType

    from memostore.search.content import Content

# Default dimensions per model when the user does not specify.
_MODEL_DEFAULTS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingClient:
    """Text embedding provider backed by the OpenAI Embeddings API.

    Uses ``AsyncOpenAI`` for native async I/O.  Only text content is
    accepted; anything else raises :class:`ValidationError` before the
    request is sent.  Pair it with
    ``EmbeddingCache(store, client, collection=TEXT_CACHE_TABLE)``.

    Requires the ``openai`` package::

        pip install memostore[openai]
    """

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        if not _HAS_OPENAI:
            msg = (
                "openai is required for OpenAIEmbeddingClient. "
                "Install it with: pip install memostore[openai]"
            )
            raise ImportError(msg)

        resolved_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not resolved_key:
            msg = (
                "No OpenAI API key provided. Pass api_key= or set the "
                "OPENAI_API_KEY environment variable."
            )
            raise ValidationError(msg)

        self._model = model
        self._dimensions = dimensions
        # Retries are the caller's decision.
        self._client: AsyncOpenAIType = AsyncOpenAI(
            api_key=resolved_key,
            base_url=base_url,
            max_retries=0,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # EmbeddingProviderClient protocol
    # ------------------------------------------------------------------

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        """Return the embedding dimensionality."""
        if self._dimensions is not None:
            return self._dimensions
        default = _MODEL_DEFAULTS.get(self._model)
        if default is not None:
            return default
        msg = f"Unknown default dimensions for model {self._model!r}. Pass dimensions= explicitly."
        raise ValidationError(msg)

    @property
    def signature(self) -> dict[str, Any]:
        return model_signature(self._model, dimension=self._dimensions)

    @property
    def supports_multi_images(self) -> bool:
        return False

    async def embed(self, contents: list[Content]) -> list[EmbeddingResult]:
        """Embed text items in one API call."""
        if not contents:
            msg = "Contents to embed cannot be empty"
            raise ValidationError(msg)
        texts: list[str] = []
        for item in contents:
            if item.modality is not Modality.TEXT:
                msg = f"{self._model} only embeds text, got {item.modality.value}"
                raise ValidationError(msg)
            texts.append(item.payload()["text"])

        kwargs: dict[str, Any] = {"input": texts, "model": self._model}
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**kwargs)
        except openai.APITimeoutError as exc:
            msg = f"OpenAI embedding request timed out: {exc}"
            raise ProviderTimeoutError(msg) from exc
        except openai.OpenAIError as exc:
            msg = f"OpenAI embedding request failed: {exc}"
            raise ProviderError(msg) from exc

        if not response.data:
            msg = "OpenAI embedding response contained no data"
            raise ProviderError(msg)
        return [
            EmbeddingResult(index=item.index, embedding=list(item.embedding), type="dense")
            for item in response.data
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.close()
