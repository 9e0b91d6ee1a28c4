"""Built-in migrations for the memostore tables.

Version 1 creates each table from its current model, so the additive
column migrations that follow are no-ops on fresh stores and only do work
on stores created by earlier releases.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String

from memostore.migrations.types import Migration
from memostore.models import Category, Memo, MultimodalEmbeddingCache, TextEmbeddingCache, User
from memostore.search.filters import eq
from memostore.store import ColumnDef
from memostore.utils import new_id, now_ms

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlmodel import SQLModel

    from memostore.store import EmbeddedStore

logger = logging.getLogger(__name__)

DIARY_CATEGORY_NAME = "Diary"
# Names already treated as the diary category (compared case-insensitively).
_DIARY_ALIASES = frozenset({"diary", "日记"})

_CACHE_MODELS: tuple[type[SQLModel], ...] = (TextEmbeddingCache, MultimodalEmbeddingCache)


def _create_table(model: type[SQLModel]) -> Callable[[EmbeddedStore], Awaitable[None]]:
    async def up(store: EmbeddedStore) -> None:
        await store.create_collection(model.__table__)  # type: ignore[attr-defined]

    return up


def _create_index(name: str, table: str, *columns: str) -> Callable[[EmbeddedStore], Awaitable[None]]:
    async def up(store: EmbeddedStore) -> None:
        await store.create_index(name, table, columns)

    return up


def _add_columns(table: str, *defs: ColumnDef) -> Callable[[EmbeddedStore], Awaitable[None]]:
    async def up(store: EmbeddedStore) -> None:
        collection = await store.open_collection(table)
        added = await collection.add_columns(defs)
        if added:
            logger.info("Added columns %s to %s", added, table)

    return up


async def add_diary_category(store: EmbeddedStore) -> None:
    """Give every user lacking one a default diary category.

    Checked per user, so re-running after a partial pass only fills the gaps.
    """
    users = await store.open_collection(User.__tablename__)
    categories = await store.open_collection(Category.__tablename__)
    created = 0
    for user in await users.query(columns=["uid"]):
        uid = user["uid"]
        existing = await categories.query(eq("uid", uid), columns=["name"])
        if any((row["name"] or "").strip().lower() in _DIARY_ALIASES for row in existing):
            continue
        ts = now_ms()
        await categories.add(
            [
                {
                    "category_id": new_id("category"),
                    "uid": uid,
                    "name": DIARY_CATEGORY_NAME,
                    "color": None,
                    "created_at": ts,
                    "updated_at": ts,
                }
            ]
        )
        created += 1
    logger.info("Created %d default diary categories", created)


def _table_migrations() -> list[Migration]:
    models: list[type[SQLModel]] = [User, Memo, Category, *_CACHE_MODELS]
    return [
        Migration(m.__tablename__, 1, f"Create {m.__tablename__} table", _create_table(m))  # type: ignore[arg-type]
        for m in models
    ]


def _index_migrations() -> list[Migration]:
    migrations = [
        Migration(
            Memo.__tablename__,
            2,
            "Index memos by owner and creation time",
            _create_index("idx_memos_uid_created_at", Memo.__tablename__, "uid", "created_at"),
        ),
        Migration(
            Category.__tablename__,
            2,
            "Index categories by owner",
            _create_index("idx_categories_uid", Category.__tablename__, "uid"),
        ),
    ]
    for model in _CACHE_MODELS:
        table = model.__tablename__
        migrations.append(
            Migration(
                table,  # type: ignore[arg-type]
                2,
                "Index cache lookup key",
                _create_index(f"idx_{table}_key", table, "model_hash", "content_hash", "modality_type"),  # type: ignore[arg-type]
            )
        )
    return migrations


ALL_MIGRATIONS: list[Migration] = [
    *_table_migrations(),
    *_index_migrations(),
    Migration(
        Memo.__tablename__,
        3,
        "Add memos.type with default 'text'",
        _add_columns(Memo.__tablename__, ColumnDef("type", String(), "text")),
    ),
    Migration(
        Category.__tablename__,
        4,
        "Add a default diary category for every user",
        add_diary_category,
    ),
    Migration(
        Memo.__tablename__,
        5,
        "Add memos.is_public with default false",
        _add_columns(Memo.__tablename__, ColumnDef("is_public", Boolean(), False)),
    ),
    Migration(
        Memo.__tablename__,
        6,
        "Add memos.source",
        _add_columns(Memo.__tablename__, ColumnDef("source", String())),
    ),
]
