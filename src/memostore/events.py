"""BackupEventBus and typed backup events."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class BackupEventType(Enum):
    """Outcomes reported by the backup manager."""

    COMPLETED = "backup:success"
    FAILED = "backup:failed"


@dataclass(frozen=True, slots=True)
class BackupCompleted:
    """A backup was exported, uploaded and retention was applied.

    Attributes:
        filename: Storage path of the new snapshot.
        reason: Why the backup ran (``"create"``, ``"update"``, ``"force"``...).
        timestamp: Completion time, epoch milliseconds.
        size_bytes: Size of the uploaded artifact.
        deleted: Snapshots removed by retention cleanup.
    """

    filename: str
    reason: str
    timestamp: int
    size_bytes: int = 0
    deleted: tuple[str, ...] = ()

    @property
    def event_type(self) -> BackupEventType:
        return BackupEventType.COMPLETED


@dataclass(frozen=True, slots=True)
class BackupFailed:
    """A backup run failed during export, upload or cleanup."""

    error: str
    reason: str
    timestamp: int

    @property
    def event_type(self) -> BackupEventType:
        return BackupEventType.FAILED


BackupEvent = BackupCompleted | BackupFailed


class BackupEventBus:
    """Dispatches backup events to registered handlers.

    Handlers may be plain functions or coroutine functions and are called
    sequentially in registration order.  Exceptions are logged but never
    propagated, so a failing observer cannot fail a backup.
    """

    def __init__(self) -> None:
        self._handlers: dict[BackupEventType, list[Callable[..., Any]]] = {et: [] for et in BackupEventType}

    def register(self, event_type: BackupEventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: BackupEventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: BackupEvent) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in list(self._handlers[event.event_type]):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Handler %r failed for %s (reason=%s)",
                    handler,
                    event.event_type.value,
                    event.reason,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers."""
        for handlers in self._handlers.values():
            handlers.clear()
