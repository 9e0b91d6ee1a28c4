"""Backup layer — manager, storage adapters, retention."""

from memostore.backup._executor import (
    export_archive,
    parse_snapshot_time,
    select_expired,
    snapshot_path,
    snapshots_from_entries,
)
from memostore.backup._manager import BackupManager
from memostore.backup.storage import (
    LocalStorageAdapter,
    S3StorageAdapter,
    StorageAdapter,
    StorageEntry,
    create_storage_adapter,
)
from memostore.backup.types import BackupSnapshot, BackupStatus

__all__ = [
    "BackupManager",
    "BackupSnapshot",
    "BackupStatus",
    "LocalStorageAdapter",
    "S3StorageAdapter",
    "StorageAdapter",
    "StorageEntry",
    "create_storage_adapter",
    "export_archive",
    "parse_snapshot_time",
    "select_expired",
    "snapshot_path",
    "snapshots_from_entries",
]
