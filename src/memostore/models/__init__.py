"""SQLModel table models for the embedded store."""

from memostore.models.categories import Category
from memostore.models.embedding_cache import (
    CachedEmbeddingBase,
    MultimodalEmbeddingCache,
    TextEmbeddingCache,
)
from memostore.models.memos import Memo
from memostore.models.migrations import SchemaVersion
from memostore.models.users import User

__all__ = [
    "CachedEmbeddingBase",
    "Category",
    "Memo",
    "MultimodalEmbeddingCache",
    "SchemaVersion",
    "TextEmbeddingCache",
    "User",
]
