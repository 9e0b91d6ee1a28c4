"""Embedding cache models — one collection per provider family.

Provides ``CachedEmbeddingBase`` (non-table base) and the two concrete
collections.  The logical key is ``(model_hash, content_hash,
modality_type)``; it is indexed, not unique: concurrent misses may
each persist a row.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, LargeBinary
from sqlmodel import Field, SQLModel

from memostore.utils import now_ms


class CachedEmbeddingBase(SQLModel):
    """Base fields for a cached embedding. Subclass with ``table=True``."""

    id: int | None = Field(default=None, primary_key=True)
    model_hash: str = Field(index=True)
    content_hash: str = Field(index=True)
    modality_type: str = Field(default="text")
    embedding: bytes = Field(sa_type=LargeBinary)
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)


class TextEmbeddingCache(CachedEmbeddingBase, table=True):
    """Cache for text-only embedding providers (``text_embedding_cache``)."""

    __tablename__ = "text_embedding_cache"


class MultimodalEmbeddingCache(CachedEmbeddingBase, table=True):
    """Cache for multimodal embedding providers (``multimodal_embedding_cache``)."""

    __tablename__ = "multimodal_embedding_cache"
