"""BackupManager — throttled, single-flight backups of the embedded store."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from memostore.backup._executor import export_archive, select_expired, snapshot_path, snapshots_from_entries
from memostore.backup.types import BackupSnapshot, BackupStatus
from memostore.events import BackupCompleted, BackupEventBus, BackupFailed
from memostore.exceptions import BackupError
from memostore.utils import now_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from memostore.backup.storage import StorageAdapter
    from memostore.config import BackupConfig
    from memostore.store import EmbeddedStore

logger = logging.getLogger(__name__)


class BackupManager:
    """Exports the store to a :class:`StorageAdapter` in reaction to writes.

    :meth:`trigger` is called synchronously from write paths and only
    decides whether to *start* a backup: it is dropped while disabled,
    while another backup is running, or within ``throttle_interval_ms`` of
    the previous start.  Admitted backups run as detached asyncio tasks:
    export, upload, retention cleanup, then a :class:`BackupCompleted` or
    :class:`BackupFailed` event.  Failures never reach the trigger caller.

    The run state (last start, in-progress flag) is read and written only
    under ``self._lock``.

    Usage::

        manager = BackupManager(store, LocalStorageAdapter("./backups"), config)
        manager.initialize()
        manager.trigger("create")        # returns immediately
        await manager.wait_idle()
    """

    def __init__(
        self,
        store: EmbeddedStore,
        storage: StorageAdapter,
        config: BackupConfig,
        *,
        events: BackupEventBus | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._storage = storage
        self._config = config
        self._events = events if events is not None else BackupEventBus()
        self._clock = clock

        self._lock = threading.Lock()
        self._enabled = False
        self._disabled_reason: str | None = "not initialized"
        self._last_started_at: int | None = None
        self._in_progress = False
        self._last_error: str | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def events(self) -> BackupEventBus:
        return self._events

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """Decide once whether backups run in this process.  Returns the decision."""
        if not self._config.enabled:
            self._disable("disabled by configuration")
        elif self._store.is_managed_storage:
            self._disable("store uses managed storage")
        else:
            self._enabled = True
            self._disabled_reason = None
            logger.info(
                "Backups enabled: destination=%s throttle=%dms retention=%s",
                self._storage.location,
                self._config.throttle_interval_ms,
                self._config.retention,
            )
        return self._enabled

    async def wait_idle(self) -> None:
        """Wait for detached backup tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop accepting triggers and wait for running backups."""
        self._disable("closed")
        await self.wait_idle()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def trigger(self, reason: str) -> bool:
        """Start a backup in the background if allowed.  Never blocks or raises.

        Returns True when a backup task was dispatched.
        """
        with self._lock:
            if not self._enabled:
                logger.debug("Backup trigger ignored (%s): %s", reason, self._disabled_reason)
                return False
            if self._in_progress:
                logger.info("Backup already running, dropping trigger (%s)", reason)
                return False
            now = self._clock()
            if self._last_started_at is not None:
                elapsed = now - self._last_started_at
                if elapsed < self._config.throttle_interval_ms:
                    remaining = self._config.throttle_interval_ms - elapsed
                    logger.info(
                        "Backup throttled (%s), next allowed in %.1fs",
                        reason,
                        remaining / 1000,
                    )
                    return False
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("No running event loop, cannot start backup (%s)", reason)
                return False
            self._last_started_at = now
            self._in_progress = True

        task = loop.create_task(self._run(reason, now), name=f"memostore-backup-{reason}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        logger.info("Backup started (%s)", reason)
        return True

    async def force_backup(self, reason: str = "force") -> BackupSnapshot:
        """Run a backup now, ignoring the throttle.

        Raises :class:`BackupError` when backups are disabled, when another
        backup is running, or when this backup fails.
        """
        with self._lock:
            if not self._enabled:
                msg = f"Backups are disabled: {self._disabled_reason}"
                raise BackupError(msg)
            if self._in_progress:
                msg = "A backup is already in progress"
                raise BackupError(msg)
            started = self._clock()
            self._last_started_at = started
            self._in_progress = True

        try:
            snapshot, deleted = await self._execute(started)
        except Exception as exc:
            self._finish(str(exc))
            await self._events.emit(BackupFailed(error=str(exc), reason=reason, timestamp=self._clock()))
            if isinstance(exc, BackupError):
                raise
            msg = f"Backup failed: {exc}"
            raise BackupError(msg) from exc

        self._finish(None)
        await self._emit_completed(snapshot, deleted, reason)
        return snapshot

    # ------------------------------------------------------------------
    # Inspection and retention
    # ------------------------------------------------------------------

    def status(self) -> BackupStatus:
        with self._lock:
            return BackupStatus(
                enabled=self._enabled,
                in_progress=self._in_progress,
                last_backup_started_at=self._last_started_at,
                throttle_interval_ms=self._config.throttle_interval_ms,
                storage_location=self._storage.location,
                disabled_reason=self._disabled_reason,
                last_error=self._last_error,
            )

    async def list_snapshots(self) -> list[BackupSnapshot]:
        """Snapshots held by the storage adapter, newest first."""
        entries = await self._storage.list()
        return snapshots_from_entries(entries, self._storage.location)

    async def cleanup(self) -> list[str]:
        """Delete snapshots outside the retention policy.  Returns deleted paths.

        A failed delete is logged and the remaining deletions still run.
        """
        snapshots = await self.list_snapshots()
        expired = select_expired(snapshots, self._config.retention, self._clock())
        deleted: list[str] = []
        for snapshot in expired:
            try:
                await self._storage.delete(snapshot.filename)
            except BackupError as exc:
                logger.warning("Failed to delete expired backup %s: %s", snapshot.filename, exc)
                continue
            deleted.append(snapshot.filename)
        if deleted:
            logger.info("Retention removed %d backup(s): %s", len(deleted), deleted)
        return deleted

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run(self, reason: str, started: int) -> None:
        try:
            snapshot, deleted = await self._execute(started)
        except Exception as exc:
            logger.exception("Backup failed (%s)", reason)
            self._finish(str(exc))
            await self._events.emit(BackupFailed(error=str(exc), reason=reason, timestamp=self._clock()))
            return
        self._finish(None)
        await self._emit_completed(snapshot, deleted, reason)

    async def _execute(self, started: int) -> tuple[BackupSnapshot, list[str]]:
        data = await export_archive(self._store)
        path = snapshot_path(started)
        location = await self._storage.write(path, data)
        snapshot = BackupSnapshot(filename=path, created_at=started, size_bytes=len(data), location=location)
        logger.info("Backup written to %s (%d bytes)", location, len(data))
        deleted = await self.cleanup()
        return snapshot, deleted

    async def _emit_completed(self, snapshot: BackupSnapshot, deleted: list[str], reason: str) -> None:
        await self._events.emit(
            BackupCompleted(
                filename=snapshot.filename,
                reason=reason,
                timestamp=self._clock(),
                size_bytes=snapshot.size_bytes,
                deleted=tuple(deleted),
            )
        )

    def _finish(self, error: str | None) -> None:
        with self._lock:
            self._in_progress = False
            self._last_error = error

    def _disable(self, reason: str) -> None:
        with self._lock:
            self._enabled = False
            self._disabled_reason = reason
        logger.info("Backups disabled: %s", reason)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Backup task %s was cancelled", task.get_name())
            self._finish("cancelled")
        elif task.exception() is not None:
            logger.error("Backup task %s crashed: %s", task.get_name(), task.exception())
            self._finish(str(task.exception()))
