"""Tests for EmbeddedStore and Collection."""

from __future__ import annotations

import sqlite3
import time
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import BigInteger, Column, Integer, LargeBinary, MetaData, String, Table, event, func, select, text

from memostore.exceptions import StoreError, StoreTimeoutError, ValidationError
from memostore.search.filters import contains, eq, gte
from memostore.store import DISTANCE_KEY, ColumnDef, EmbeddedStore
from memostore.utils import cosine_distance, pack_vector, unpack_vector

if TYPE_CHECKING:
    from pathlib import Path


def _docs_table() -> Table:
    return Table(
        "docs",
        MetaData(),
        Column("id", String, primary_key=True),
        Column("owner", String, nullable=False),
        Column("body", String),
        Column("vec", LargeBinary),
        Column("created_at", BigInteger),
    )


async def _seed(store: EmbeddedStore):
    docs = await store.create_collection(_docs_table())
    await docs.add(
        [
            {"id": "d1", "owner": "a", "body": "alpha", "vec": pack_vector([1.0, 0.0]), "created_at": 1},
            {"id": "d2", "owner": "a", "body": "beta", "vec": pack_vector([0.9, 0.1]), "created_at": 2},
            {"id": "d3", "owner": "a", "body": "gamma 100%", "vec": pack_vector([0.0, 1.0]), "created_at": 3},
            {"id": "d4", "owner": "b", "body": "delta", "vec": pack_vector([-1.0, 0.0]), "created_at": 4},
            {"id": "d5", "owner": "a", "body": "no vector", "vec": None, "created_at": 5},
        ]
    )
    return docs


# =========================================================================
# Vector helpers
# =========================================================================


class TestVectorHelpers:
    def test_pack_roundtrip_is_bit_identical(self) -> None:
        vector = [0.1, -0.2, 1e-300, 3.141592653589793]
        assert unpack_vector(pack_vector(vector)) == vector

    def test_unpack_none(self) -> None:
        assert unpack_vector(None) is None

    def test_cosine_distance_range(self) -> None:
        assert cosine_distance(pack_vector([1, 0]), pack_vector([1, 0])) == pytest.approx(0.0)
        assert cosine_distance(pack_vector([1, 0]), pack_vector([0, 1])) == pytest.approx(1.0)
        assert cosine_distance(pack_vector([1, 0]), pack_vector([-1, 0])) == pytest.approx(2.0)

    def test_cosine_distance_mismatch_and_zero(self) -> None:
        assert cosine_distance(pack_vector([1, 0]), pack_vector([1, 0, 0])) is None
        assert cosine_distance(pack_vector([0, 0]), pack_vector([1, 0])) == 1.0
        assert cosine_distance(None, pack_vector([1, 0])) is None


# =========================================================================
# Store lifecycle
# =========================================================================


class TestEmbeddedStore:
    @pytest.mark.asyncio
    async def test_connect_creates_directory(self, tmp_path: Path) -> None:
        s = EmbeddedStore(tmp_path / "nested" / "data")
        await s.connect()
        try:
            await s.table_names()
            assert s.db_path.exists()
        finally:
            await s.close()

    @pytest.mark.asyncio
    async def test_engine_requires_connect(self, tmp_path: Path) -> None:
        s = EmbeddedStore(tmp_path)
        with pytest.raises(StoreError, match="not connected"):
            _ = s.engine

    def test_managed_storage_flag(self, tmp_path: Path) -> None:
        assert EmbeddedStore(tmp_path, storage_type="managed").is_managed_storage
        assert not EmbeddedStore(tmp_path).is_managed_storage

    @pytest.mark.asyncio
    async def test_create_and_list_collections(self, store: EmbeddedStore) -> None:
        assert not await store.has_collection("docs")
        await store.create_collection(_docs_table())
        assert await store.has_collection("docs")
        assert "docs" in await store.table_names()
        # checkfirst: creating again is harmless
        await store.create_collection(_docs_table())

    @pytest.mark.asyncio
    async def test_open_missing_collection(self, store: EmbeddedStore) -> None:
        with pytest.raises(StoreError, match="does not exist"):
            await store.open_collection("nope")

    @pytest.mark.asyncio
    async def test_create_index_is_idempotent(self, store: EmbeddedStore) -> None:
        await store.create_collection(_docs_table())
        await store.create_index("idx_docs_owner", "docs", ["owner"])
        await store.create_index("idx_docs_owner", "docs", ["owner"])
        rows = await store.fetch_all(
            text("SELECT COUNT(*) AS n FROM sqlite_master WHERE type = 'index' AND name = 'idx_docs_owner'"),
            what="count indexes",
        )
        assert rows == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_export_snapshot(self, store: EmbeddedStore, tmp_path: Path) -> None:
        await _seed(store)
        dest = await store.export_snapshot(tmp_path / "out" / "copy.db")
        assert dest.exists()
        with sqlite3.connect(dest) as conn:
            (count,) = conn.execute("SELECT COUNT(*) FROM docs").fetchone()
        assert count == 5

    @pytest.mark.asyncio
    async def test_query_timeout(self, tmp_path: Path) -> None:
        s = EmbeddedStore(tmp_path, query_timeout=0.05)
        await s.connect()

        @event.listens_for(s.engine.sync_engine, "connect")
        def _slow(dbapi_connection, connection_record) -> None:
            dbapi_connection.create_function("slow", 0, lambda: time.sleep(0.3) or 1)

        try:
            with pytest.raises(StoreTimeoutError):
                await s.fetch_all(select(func.slow()), what="slow query")
        finally:
            await s.close()


# =========================================================================
# Collection rows
# =========================================================================


class TestCollectionRows:
    @pytest.mark.asyncio
    async def test_query_filter_and_order(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        rows = await docs.query(eq("owner", "a"), order_by="created_at", descending=True, limit=2)
        assert [r["id"] for r in rows] == ["d5", "d3"]

    @pytest.mark.asyncio
    async def test_query_columns(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        rows = await docs.query(eq("id", "d1"), columns=["id", "body"])
        assert rows == [{"id": "d1", "body": "alpha"}]

    @pytest.mark.asyncio
    async def test_contains_escapes_wildcards(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        rows = await docs.query(contains("body", "100%"))
        assert [r["id"] for r in rows] == ["d3"]
        assert await docs.query(contains("body", "%")) == rows

    @pytest.mark.asyncio
    async def test_count(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        assert await docs.count() == 5
        assert await docs.count(eq("owner", "b")) == 1

    @pytest.mark.asyncio
    async def test_update_and_delete(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        assert await docs.update(eq("owner", "a"), {"body": "changed"}) == 4
        assert await docs.count(eq("body", "changed")) == 4
        assert await docs.delete(gte("created_at", 4)) == 2
        assert await docs.count() == 3

    @pytest.mark.asyncio
    async def test_add_unknown_column(self, store: EmbeddedStore) -> None:
        docs = await store.create_collection(_docs_table())
        with pytest.raises(ValidationError, match="bogus"):
            await docs.add([{"id": "x", "owner": "a", "bogus": 1}])

    @pytest.mark.asyncio
    async def test_add_duplicate_primary_key(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        with pytest.raises(StoreError):
            await docs.add([{"id": "d1", "owner": "a"}])

    @pytest.mark.asyncio
    async def test_first(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        assert (await docs.first(eq("id", "d2")))["body"] == "beta"
        assert await docs.first(eq("id", "zz")) is None


class TestAddColumns:
    @pytest.mark.asyncio
    async def test_adds_with_literal_default(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        added = await docs.add_columns([ColumnDef("kind", String(), "text"), ColumnDef("rank", Integer())])
        assert added == ["kind", "rank"]
        assert "kind" in docs.column_names
        rows = await docs.query(eq("id", "d1"), columns=["kind", "rank"])
        assert rows == [{"kind": "text", "rank": None}]

    @pytest.mark.asyncio
    async def test_existing_column_is_noop(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        await docs.add_columns([ColumnDef("kind", String(), "text")])
        assert await docs.add_columns([ColumnDef("kind", String(), "text"), ColumnDef("body", String())]) == []


# =========================================================================
# Nearest neighbours
# =========================================================================


class TestNearest:
    @pytest.mark.asyncio
    async def test_ascending_distance(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        rows = await docs.nearest("vec", [1.0, 0.0], k=10)
        assert [r["id"] for r in rows] == ["d1", "d2", "d3", "d4"]
        distances = [r[DISTANCE_KEY] for r in rows]
        assert distances == sorted(distances)
        assert distances[0] == pytest.approx(0.0)
        assert distances[-1] == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_filter_and_k(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        rows = await docs.nearest("vec", [1.0, 0.0], k=2, filter=eq("owner", "a"))
        assert [r["id"] for r in rows] == ["d1", "d2"]

    @pytest.mark.asyncio
    async def test_zero_k(self, store: EmbeddedStore) -> None:
        docs = await _seed(store)
        assert await docs.nearest("vec", [1.0, 0.0], k=0) == []
