"""Backup value types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BackupSnapshot:
    """One backup artifact held by a storage adapter.

    Attributes:
        filename: Adapter-relative path, ``YYYY-MM-DD/backup_<stamp>_<ms>.tar.gz``.
        created_at: Backup start time, epoch milliseconds.
        size_bytes: Artifact size.
        location: Full destination (filesystem path or ``s3://`` URL).
    """

    filename: str
    created_at: int
    size_bytes: int
    location: str


@dataclass(frozen=True, slots=True)
class BackupStatus:
    """Point-in-time view of the backup manager."""

    enabled: bool
    in_progress: bool
    last_backup_started_at: int | None
    throttle_interval_ms: int
    storage_location: str
    disabled_reason: str | None = None
    last_error: str | None = None
