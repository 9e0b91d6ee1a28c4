"""Backup execution helpers — archive export, naming, and retention selection."""

from __future__ import annotations

import asyncio
import io
import re
import shutil
import tarfile
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from memostore.backup.types import BackupSnapshot
from memostore.store import DB_FILENAME

if TYPE_CHECKING:
    from collections.abc import Iterable

    from memostore.backup.storage import StorageEntry
    from memostore.config import RetentionPolicy
    from memostore.store import EmbeddedStore

DAY_MS = 24 * 60 * 60 * 1000

_SNAPSHOT_RE = re.compile(r"backup_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}_(\d+)\.tar\.gz$")


def snapshot_path(started_at: int) -> str:
    """Storage path for a backup started at *started_at* (epoch ms, UTC)."""
    moment = datetime.fromtimestamp(started_at / 1000, tz=UTC)
    return f"{moment:%Y-%m-%d}/backup_{moment:%Y-%m-%d_%H-%M-%S}_{started_at}.tar.gz"


def parse_snapshot_time(path: str) -> int | None:
    """Epoch ms encoded in a snapshot path, or None if *path* is not a snapshot."""
    match = _SNAPSHOT_RE.search(path)
    return int(match.group(1)) if match else None


def snapshots_from_entries(entries: Iterable[StorageEntry], location: str) -> list[BackupSnapshot]:
    """Snapshots among storage *entries*, newest first.  Other objects are ignored."""
    snapshots: list[BackupSnapshot] = []
    for entry in entries:
        created_at = parse_snapshot_time(entry.path)
        if created_at is None:
            continue
        snapshots.append(
            BackupSnapshot(
                filename=entry.path,
                created_at=created_at,
                size_bytes=entry.size_bytes,
                location=f"{location.rstrip('/')}/{entry.path}",
            )
        )
    snapshots.sort(key=lambda s: s.created_at, reverse=True)
    return snapshots


def select_expired(
    snapshots: Iterable[BackupSnapshot],
    policy: RetentionPolicy,
    now: int,
) -> list[BackupSnapshot]:
    """Snapshots that violate *policy* at time *now*.

    Snapshots are ranked newest first.  One is kept only if its rank is
    within ``max_count`` and its age within ``max_days``; a ``None`` bound
    is not enforced.
    """
    ranked = sorted(snapshots, key=lambda s: s.created_at, reverse=True)
    expired: list[BackupSnapshot] = []
    for rank, snapshot in enumerate(ranked, start=1):
        too_many = policy.max_count is not None and rank > policy.max_count
        too_old = policy.max_days is not None and now - snapshot.created_at > policy.max_days * DAY_MS
        if too_many or too_old:
            expired.append(snapshot)
    return expired


async def export_archive(store: EmbeddedStore) -> bytes:
    """Export a consistent copy of *store* and return it as a ``.tar.gz``."""
    workdir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="memostore-backup-"))
    try:
        db_copy = await store.export_snapshot(workdir / DB_FILENAME)
        return await asyncio.to_thread(_tar_gz, db_copy)
    finally:
        await asyncio.to_thread(shutil.rmtree, workdir, ignore_errors=True)


def _tar_gz(source: Path) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        archive.add(source, arcname=source.name)
    return buffer.getvalue()
