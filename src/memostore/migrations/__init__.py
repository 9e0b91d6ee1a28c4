"""Schema and data migrations for the embedded store."""

from memostore.migrations._runner import MIGRATIONS_TABLE, MigrationRunner
from memostore.migrations.scripts import ALL_MIGRATIONS, DIARY_CATEGORY_NAME, add_diary_category
from memostore.migrations.types import Migration, MigrationResult

__all__ = [
    "ALL_MIGRATIONS",
    "DIARY_CATEGORY_NAME",
    "MIGRATIONS_TABLE",
    "Migration",
    "MigrationResult",
    "MigrationRunner",
    "add_diary_category",
]
