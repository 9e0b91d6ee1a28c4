"""MultimodalEmbeddingClient — async HTTP client for the multimodal embedding API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from memostore.config import DEFAULT_BASE_URL, DEFAULT_DIMENSION, DEFAULT_MODEL
from memostore.exceptions import ProviderError, ProviderTimeoutError, ValidationError
from memostore.search.content import Modality, model_signature
from memostore.search.providers._protocol import EmbeddingResult

if TYPE_CHECKING:
    from memostore.config import EmbeddingConfig
    from memostore.search.content import Content

logger = logging.getLogger(__name__)

# Supported output dimensions per model.
MODEL_DIMENSIONS: dict[str, tuple[int, ...]] = {
    "qwen3-vl-embedding": (2560, 2048, 1536, 1024, 768, 512, 256),
    "qwen2.5-vl-embedding": (2048, 1024, 768, 512),
    "tongyi-embedding-vision-plus": (1152, 1024, 512, 256, 128, 64),
    "tongyi-embedding-vision-flash": (768, 512, 256, 128, 64),
}

MODEL_DEFAULT_DIMENSIONS: dict[str, int] = {
    "qwen3-vl-embedding": 2560,
    "qwen2.5-vl-embedding": 1024,
    "tongyi-embedding-vision-plus": 1152,
    "tongyi-embedding-vision-flash": 768,
    "multimodal-embedding-v1": 1024,
}

MULTI_IMAGE_MODELS: frozenset[str] = frozenset(
    {"tongyi-embedding-vision-plus", "tongyi-embedding-vision-flash"}
)


def resolve_dimension(model: str, configured: int) -> int:
    """Pick the output dimension to request from *model*.

    The configured value is used when the model supports it.  Otherwise the
    model's default is used and a warning is logged.  Models without a
    known dimension table get the configured value unchanged.
    """
    supported = MODEL_DIMENSIONS.get(model)
    if supported is None or configured in supported:
        return configured
    fallback = MODEL_DEFAULT_DIMENSIONS[model]
    logger.warning(
        "Configured dimension %d is not supported by model %s, using %d",
        configured,
        model,
        fallback,
    )
    return fallback


class MultimodalEmbeddingClient:
    """Async client for ``POST {base_url}/embeddings``.

    One :meth:`embed` call is one HTTP request carrying every item.  Error
    bodies (``{"code": ..., "message": ...}``), non-2xx statuses and
    responses without ``output.embeddings`` raise :class:`ProviderError`;
    request timeouts raise :class:`ProviderTimeoutError`.  No retries are
    attempted.

    Pass *transport* to route requests elsewhere (``httpx.MockTransport``
    in tests).
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        dimension: int = DEFAULT_DIMENSION,
        output_type: str | None = "dense",
        fps: float | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            msg = "No embedding API key provided. Pass api_key= or set DASHSCOPE_API_KEY."
            raise ValidationError(msg)

        self._model = model
        self._dimension = resolve_dimension(model, dimension)
        self._output_type = output_type
        self._fps = fps
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: EmbeddingConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> MultimodalEmbeddingClient:
        return cls(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            dimension=config.dimension,
            output_type=config.output_type,
            fps=config.fps,
            timeout=config.timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # EmbeddingProviderClient protocol
    # ------------------------------------------------------------------

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def signature(self) -> dict[str, Any]:
        return model_signature(
            self._model,
            output_type=self._output_type,
            dimension=self._dimension,
            fps=self._fps,
        )

    @property
    def supports_multi_images(self) -> bool:
        return self._model in MULTI_IMAGE_MODELS

    async def embed(self, contents: list[Content]) -> list[EmbeddingResult]:
        """Embed *contents* with one request; results carry request indexes."""
        if not contents:
            msg = "Contents to embed cannot be empty"
            raise ValidationError(msg)
        for item in contents:
            if item.modality is Modality.MULTI_IMAGES and not self.supports_multi_images:
                msg = f"Model {self._model} does not support multi_images input"
                raise ValidationError(msg)

        payload: dict[str, Any] = {
            "model": self._model,
            "input": {"contents": [item.payload() for item in contents]},
        }
        parameters = self._parameters(contents)
        if parameters:
            payload["parameters"] = parameters

        try:
            response = await self._client.post("/embeddings", json=payload)
        except httpx.TimeoutException as exc:
            msg = f"Embedding request timed out: {exc}"
            raise ProviderTimeoutError(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"Embedding request failed: {exc}"
            raise ProviderError(msg) from exc

        return self._parse(response)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _parameters(self, contents: list[Content]) -> dict[str, Any]:
        parameters: dict[str, Any] = {"dimension": self._dimension}
        if self._output_type:
            parameters["output_type"] = self._output_type
        # fps only applies to video frames
        if self._fps is not None and any(item.has_video for item in contents):
            parameters["fps"] = self._fps
        return parameters

    def _parse(self, response: httpx.Response) -> list[EmbeddingResult]:
        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            detail = data.get("message") if isinstance(data, dict) else response.text
            msg = f"Embedding API returned HTTP {response.status_code}: {detail}"
            raise ProviderError(msg)
        if not isinstance(data, dict):
            msg = "Embedding API returned a non-JSON body"
            raise ProviderError(msg)
        if data.get("code"):
            msg = f"Embedding API error {data['code']}: {data.get('message', '')}".rstrip(": ")
            raise ProviderError(msg)

        embeddings = (data.get("output") or {}).get("embeddings")
        if not embeddings:
            msg = "Embedding API response is missing output.embeddings"
            raise ProviderError(msg)

        results: list[EmbeddingResult] = []
        for position, item in enumerate(embeddings):
            vector = item.get("embedding")
            if not isinstance(vector, list):
                msg = f"Embedding API result {position} has no embedding"
                raise ProviderError(msg)
            results.append(
                EmbeddingResult(
                    index=int(item.get("index", position)),
                    embedding=[float(v) for v in vector],
                    type=item.get("type"),
                )
            )
        logger.debug(
            "Embedded %d items (request_id=%s)", len(results), data.get("request_id")
        )
        return results
