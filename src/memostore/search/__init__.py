"""Embedding and search layer — content model, cache, providers, filters, engine."""

from memostore.search._engine import VectorSearchEngine, similarity_from_distance
from memostore.search.cache import EmbeddingCache
from memostore.search.content import Content, Modality, model_signature, signature_hash
from memostore.search.filters import (
    Comparison,
    FilterExpression,
    FilterOp,
    LogicalGroup,
    LogicalOp,
    and_,
    combine,
    compile_sqlalchemy,
    contains,
    date_range,
    eq,
    exists,
    gt,
    gte,
    in_,
    lt,
    lte,
    ne,
    not_in,
    or_,
)
from memostore.search.providers import EmbeddingProviderClient, EmbeddingResult, MultimodalEmbeddingClient
from memostore.search.types import Page, SearchHit

__all__ = [
    "Comparison",
    "Content",
    "EmbeddingCache",
    "EmbeddingProviderClient",
    "EmbeddingResult",
    "FilterExpression",
    "FilterOp",
    "LogicalGroup",
    "LogicalOp",
    "Modality",
    "MultimodalEmbeddingClient",
    "Page",
    "SearchHit",
    "VectorSearchEngine",
    "and_",
    "combine",
    "compile_sqlalchemy",
    "contains",
    "date_range",
    "eq",
    "exists",
    "gt",
    "gte",
    "in_",
    "lt",
    "lte",
    "model_signature",
    "ne",
    "not_in",
    "or_",
    "signature_hash",
    "similarity_from_distance",
]
