"""Migration value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from memostore.store import EmbeddedStore


@dataclass(frozen=True, slots=True)
class Migration:
    """A versioned, named transform of one table.

    Attributes:
        table_name: Table whose version this migration advances.
        version: Positive integer; applied in ascending order per table.
        description: Human-readable summary, stored with the version record.
        up: Coroutine function performing the change against the store.
            Data migrations must check per-row whether the target state
            already holds, since a crash may cause them to run again.
    """

    table_name: str
    version: int
    description: str
    up: Callable[[EmbeddedStore], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class MigrationResult:
    """Outcome of applying migrations to one table.

    In dry-run mode ``applied`` lists the versions that *would* run and the
    store is left untouched.
    """

    table_name: str
    from_version: int
    to_version: int
    applied: list[int] = field(default_factory=list)
    dry_run: bool = False
