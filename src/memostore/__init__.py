"""memostore — embedded memo store with cached embeddings, vector search, migrations and backups."""

from memostore._memostore import MemoStore
from memostore.backup import BackupManager, LocalStorageAdapter, S3StorageAdapter, StorageAdapter
from memostore.config import (
    BackupConfig,
    EmbeddingConfig,
    MemoStoreConfig,
    RetentionPolicy,
    S3Config,
    StoreConfig,
)
from memostore.events import BackupCompleted, BackupEventBus, BackupEventType, BackupFailed
from memostore.exceptions import (
    BackupError,
    CacheError,
    ConfigError,
    MemoStoreError,
    MigrationError,
    ProviderError,
    ProviderTimeoutError,
    RecordNotFoundError,
    StoreDuplicateError,
    StoreError,
    StoreTimeoutError,
    ValidationError,
)
from memostore.memos import MemoService
from memostore.migrations import ALL_MIGRATIONS, Migration, MigrationResult, MigrationRunner
from memostore.search import (
    Content,
    EmbeddingCache,
    Modality,
    MultimodalEmbeddingClient,
    Page,
    SearchHit,
    VectorSearchEngine,
)
from memostore.store import Collection, ColumnDef, EmbeddedStore

__version__ = "0.1.0"

__all__ = [
    "ALL_MIGRATIONS",
    "BackupCompleted",
    "BackupConfig",
    "BackupError",
    "BackupEventBus",
    "BackupEventType",
    "BackupFailed",
    "BackupManager",
    "CacheError",
    "Collection",
    "ColumnDef",
    "ConfigError",
    "Content",
    "EmbeddedStore",
    "EmbeddingCache",
    "EmbeddingConfig",
    "LocalStorageAdapter",
    "MemoService",
    "MemoStore",
    "MemoStoreConfig",
    "MemoStoreError",
    "Migration",
    "MigrationError",
    "MigrationResult",
    "MigrationRunner",
    "Modality",
    "MultimodalEmbeddingClient",
    "Page",
    "ProviderError",
    "ProviderTimeoutError",
    "RecordNotFoundError",
    "RetentionPolicy",
    "S3Config",
    "S3StorageAdapter",
    "SearchHit",
    "StorageAdapter",
    "StoreConfig",
    "StoreDuplicateError",
    "StoreError",
    "StoreTimeoutError",
    "ValidationError",
    "VectorSearchEngine",
]
