"""Tests for BackupEventBus and backup event types."""

from __future__ import annotations

import logging

import pytest

from memostore.events import BackupCompleted, BackupEventBus, BackupEventType, BackupFailed

# =========================================================================
# Helpers
# =========================================================================


def _completed(reason: str = "create") -> BackupCompleted:
    return BackupCompleted(filename="2024-05-01/backup.tar.gz", reason=reason, timestamp=1)


async def _failing_handler(event: BackupCompleted | BackupFailed) -> None:
    """Handler that always raises."""
    raise RuntimeError(f"boom on {event.reason}")


# =========================================================================
# Event types
# =========================================================================


class TestBackupEventType:
    def test_values(self) -> None:
        assert BackupEventType.COMPLETED.value == "backup:success"
        assert BackupEventType.FAILED.value == "backup:failed"

    def test_events_know_their_type(self) -> None:
        assert _completed().event_type is BackupEventType.COMPLETED
        failed = BackupFailed(error="x", reason="update", timestamp=1)
        assert failed.event_type is BackupEventType.FAILED

    def test_completed_defaults(self) -> None:
        ev = _completed()
        assert ev.size_bytes == 0
        assert ev.deleted == ()

    def test_immutable(self) -> None:
        ev = _completed()
        with pytest.raises(AttributeError):
            ev.reason = "changed"  # type: ignore[misc]


# =========================================================================
# Registration
# =========================================================================


class TestBackupEventBusRegistration:
    def test_initial_handler_count(self) -> None:
        assert BackupEventBus().handler_count == 0

    def test_register_multiple_types(self) -> None:
        bus = BackupEventBus()
        bus.register(BackupEventType.COMPLETED, _failing_handler)
        bus.register(BackupEventType.FAILED, _failing_handler)
        assert bus.handler_count == 2

    def test_unregister(self) -> None:
        bus = BackupEventBus()
        bus.register(BackupEventType.COMPLETED, _failing_handler)
        assert bus.unregister(BackupEventType.COMPLETED, _failing_handler) is True
        assert bus.unregister(BackupEventType.COMPLETED, _failing_handler) is False
        assert bus.handler_count == 0

    def test_clear(self) -> None:
        bus = BackupEventBus()
        bus.register(BackupEventType.COMPLETED, _failing_handler)
        bus.register(BackupEventType.FAILED, _failing_handler)
        bus.clear()
        assert bus.handler_count == 0


# =========================================================================
# Emit
# =========================================================================


class TestBackupEventBusEmit:
    @pytest.mark.asyncio
    async def test_sync_and_async_handlers_in_order(self) -> None:
        bus = BackupEventBus()
        order: list[str] = []

        def first(event: BackupCompleted) -> None:
            order.append("sync")

        async def second(event: BackupCompleted) -> None:
            order.append("async")

        bus.register(BackupEventType.COMPLETED, first)
        bus.register(BackupEventType.COMPLETED, second)
        await bus.emit(_completed())
        assert order == ["sync", "async"]

    @pytest.mark.asyncio
    async def test_type_filtering(self) -> None:
        bus = BackupEventBus()
        completed: list[BackupCompleted] = []
        failed: list[BackupFailed] = []
        bus.register(BackupEventType.COMPLETED, completed.append)
        bus.register(BackupEventType.FAILED, failed.append)

        await bus.emit(_completed())

        assert len(completed) == 1
        assert failed == []

    @pytest.mark.asyncio
    async def test_no_handler_noop(self) -> None:
        await BackupEventBus().emit(_completed())

    @pytest.mark.asyncio
    async def test_failing_handler_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = BackupEventBus()
        after: list[BackupCompleted] = []
        bus.register(BackupEventType.COMPLETED, _failing_handler)
        bus.register(BackupEventType.COMPLETED, after.append)

        with caplog.at_level(logging.WARNING, logger="memostore.events"):
            await bus.emit(_completed("force"))

        assert len(after) == 1
        assert "reason=force" in caplog.text
