"""Embedded store layer."""

from memostore.store._store import DB_FILENAME, EmbeddedStore, is_duplicate_error
from memostore.store.collection import Collection, ColumnDef
from memostore.utils import DISTANCE_KEY

__all__ = [
    "DB_FILENAME",
    "DISTANCE_KEY",
    "Collection",
    "ColumnDef",
    "EmbeddedStore",
    "is_duplicate_error",
]
