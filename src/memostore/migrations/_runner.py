"""MigrationRunner — ordered, idempotent schema/data migrations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from memostore.exceptions import MigrationError
from memostore.migrations.types import MigrationResult
from memostore.models import SchemaVersion
from memostore.search.filters import eq
from memostore.store import is_duplicate_error
from memostore.utils import now_ms

if TYPE_CHECKING:
    from collections.abc import Sequence

    from memostore.migrations.types import Migration
    from memostore.store import Collection, EmbeddedStore

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = SchemaVersion.__tablename__


class MigrationRunner:
    """Applies registered migrations to an :class:`EmbeddedStore`.

    Per table, the current version is the highest recorded version (0 if
    none).  Migrations with a higher version run in ascending order, and a
    version record is written after each one succeeds.  Any failure raises
    :class:`MigrationError`, except store errors reporting an
    already-exists/duplicate condition, which count as a successful no-op.

    Tables are processed in the order they first appear in *migrations*, so
    register the migrations that create referenced tables first.
    """

    def __init__(self, migrations: Sequence[Migration], *, dry_run: bool = False) -> None:
        seen: set[tuple[str, int]] = set()
        for m in migrations:
            if m.version <= 0:
                msg = f"Migration versions must be positive: {m.table_name} v{m.version}"
                raise MigrationError(msg)
            key = (m.table_name, m.version)
            if key in seen:
                msg = f"Duplicate migration registered: {m.table_name} v{m.version}"
                raise MigrationError(msg)
            seen.add(key)
        self._migrations = list(migrations)
        self._dry_run = dry_run

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations)

    @property
    def table_names(self) -> list[str]:
        """Migrated tables, in first-registration order."""
        return list(dict.fromkeys(m.table_name for m in self._migrations))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def apply(self, store: EmbeddedStore) -> list[MigrationResult]:
        """Run all pending migrations.  Returns one result per table."""
        versions = await self._versions_collection(store)
        results: list[MigrationResult] = []

        for table_name in self.table_names:
            current = await self._current_version(versions, table_name)
            pending = sorted(
                (m for m in self._migrations if m.table_name == table_name and m.version > current),
                key=lambda m: m.version,
            )
            if not pending:
                logger.debug("Table %s is up to date at v%d", table_name, current)
                results.append(MigrationResult(table_name, current, current))
                continue

            if self._dry_run:
                for m in pending:
                    logger.info("[dry-run] Would apply %s v%d: %s", table_name, m.version, m.description)
                results.append(
                    MigrationResult(
                        table_name,
                        current,
                        pending[-1].version,
                        applied=[m.version for m in pending],
                        dry_run=True,
                    )
                )
                continue

            applied: list[int] = []
            for m in pending:
                await self._run_one(store, m)
                await versions.add(
                    [
                        {
                            "table_name": table_name,
                            "version": m.version,
                            "description": m.description,
                            "applied_at": now_ms(),
                        }
                    ]
                )
                applied.append(m.version)
                logger.info("Applied migration %s v%d: %s", table_name, m.version, m.description)

            results.append(MigrationResult(table_name, current, applied[-1], applied=applied))

        return results

    async def status(self, store: EmbeddedStore) -> dict[str, int]:
        """Current recorded version of every registered table."""
        versions = await self._versions_collection(store)
        return {t: await self._current_version(versions, t) for t in self.table_names}

    async def validate(self, store: EmbeddedStore) -> tuple[bool, list[str]]:
        """Check recorded versions against the registered migrations.

        Reports tables behind their latest registered version and versions
        recorded more than once.  Returns ``(valid, errors)``.
        """
        versions = await self._versions_collection(store)
        errors: list[str] = []
        for table_name in self.table_names:
            expected = max(m.version for m in self._migrations if m.table_name == table_name)
            rows = await versions.query(eq("table_name", table_name), columns=["version"])
            recorded = [r["version"] for r in rows]
            current = max(recorded, default=0)
            if current != expected:
                errors.append(f"{table_name}: at v{current}, expected v{expected}")
            duplicates = sorted({v for v in recorded if recorded.count(v) > 1})
            if duplicates:
                errors.append(f"{table_name}: versions recorded more than once: {duplicates}")
        return (not errors, errors)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _versions_collection(self, store: EmbeddedStore) -> Collection:
        return await store.create_collection(SchemaVersion.__table__)

    async def _current_version(self, versions: Collection, table_name: str) -> int:
        rows = await versions.query(
            eq("table_name", table_name),
            columns=["version"],
            order_by="version",
            descending=True,
            limit=1,
        )
        return int(rows[0]["version"]) if rows else 0

    async def _run_one(self, store: EmbeddedStore, migration: Migration) -> None:
        try:
            await migration.up(store)
        except Exception as exc:
            if is_duplicate_error(exc):
                logger.info(
                    "Migration %s v%d reported an existing object, treating as applied: %s",
                    migration.table_name,
                    migration.version,
                    exc,
                )
                return
            logger.exception("Migration %s v%d failed", migration.table_name, migration.version)
            msg = f"Migration {migration.table_name} v{migration.version} ({migration.description}) failed: {exc}"
            raise MigrationError(msg) from exc
