"""Embedding providers — protocol and implementations."""

from memostore.search.providers._protocol import EmbeddingProviderClient, EmbeddingResult
from memostore.search.providers.multimodal import (
    MODEL_DEFAULT_DIMENSIONS,
    MODEL_DIMENSIONS,
    MULTI_IMAGE_MODELS,
    MultimodalEmbeddingClient,
    resolve_dimension,
)

__all__ = [
    "MODEL_DEFAULT_DIMENSIONS",
    "MODEL_DIMENSIONS",
    "MULTI_IMAGE_MODELS",
    "EmbeddingProviderClient",
    "EmbeddingResult",
    "MultimodalEmbeddingClient",
    "resolve_dimension",
]

# Optional providers, available only when their extras are installed.
try:
    from memostore.search.providers.openai import OpenAIEmbeddingClient

    __all__.append("OpenAIEmbeddingClient")
except ImportError:  # pragma: no cover
    pass
