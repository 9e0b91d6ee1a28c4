"""VectorSearchEngine — ranked and filtered reads over a vector-bearing collection."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from memostore.exceptions import RecordNotFoundError, ValidationError
from memostore.models import Memo
from memostore.search.content import Content
from memostore.search.filters import and_, combine, eq, ne
from memostore.search.types import Page, SearchHit
from memostore.utils import DISTANCE_KEY, unpack_vector

if TYPE_CHECKING:
    from memostore.search.cache import EmbeddingCache
    from memostore.search.filters import FilterExpression
    from memostore.store import Collection, EmbeddedStore

logger = logging.getLogger(__name__)

Query = str | Content | Sequence[float]


def similarity_from_distance(distance: float) -> float:
    """Map a cosine distance in ``[0, 2]`` to a similarity in ``[0, 1]``."""
    return 1.0 - distance / 2.0


class VectorSearchEngine:
    """Nearest-neighbour search and filtered listing, scoped per owner.

    Ranking and predicate filtering are pushed into the store's native
    query; only the similarity threshold is applied afterwards.  Results
    keep the store's ascending-distance order.

    Text and :class:`Content` queries are embedded through the
    :class:`EmbeddingCache`; vector queries are used as given.
    """

    def __init__(
        self,
        store: EmbeddedStore,
        cache: EmbeddingCache | None = None,
        *,
        collection: str = Memo.__tablename__,
        vector_column: str = "vector",
        owner_field: str = "uid",
        id_field: str = "memo_id",
    ) -> None:
        self._store = store
        self._cache = cache
        self._collection_name = collection
        self._vector_column = vector_column
        self._owner_field = owner_field
        self._id_field = id_field

    # ------------------------------------------------------------------
    # Ranked search
    # ------------------------------------------------------------------

    async def search(
        self,
        owner_id: str,
        query: Query,
        *,
        filter: FilterExpression | None = None,  # noqa: A002
        top_k: int = 10,
        similarity_threshold: float | None = None,
    ) -> list[SearchHit]:
        """Return up to *top_k* of the owner's records nearest to *query*."""
        if top_k < 1:
            msg = f"top_k must be at least 1, got {top_k}"
            raise ValidationError(msg)
        vector = await self._query_vector(query)
        collection = await self._collection()
        rows = await collection.nearest(
            self._vector_column,
            vector,
            k=top_k,
            filter=combine(eq(self._owner_field, owner_id), filter),
        )
        return self._hits(rows, similarity_threshold)

    async def related(
        self,
        owner_id: str,
        record_id: str,
        *,
        top_k: int = 5,
        similarity_threshold: float | None = None,
    ) -> list[SearchHit]:
        """Records nearest to an existing record, excluding the record itself."""
        collection = await self._collection()
        row = await collection.first(and_(eq(self._id_field, record_id), eq(self._owner_field, owner_id)))
        if row is None:
            msg = f"No record {record_id!r} for owner {owner_id!r}"
            raise RecordNotFoundError(msg)
        vector = unpack_vector(row[self._vector_column])
        if vector is None:
            return []
        rows = await collection.nearest(
            self._vector_column,
            vector,
            k=top_k,
            filter=and_(eq(self._owner_field, owner_id), ne(self._id_field, record_id)),
        )
        return self._hits(rows, similarity_threshold)

    # ------------------------------------------------------------------
    # Plain listing
    # ------------------------------------------------------------------

    async def list(
        self,
        owner_id: str,
        *,
        filter: FilterExpression | None = None,  # noqa: A002
        sort_by: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: int = 20,
    ) -> Page:
        """Filtered listing, sorted and sliced in process.

        The full predicate-matched set is loaded, which is fine for
        per-owner corpora but does not scale to large ones.
        """
        if offset < 0 or limit < 0:
            msg = "offset and limit must be non-negative"
            raise ValidationError(msg)
        collection = await self._collection()
        if sort_by not in collection.column_names:
            msg = f"Cannot sort by unknown column {sort_by!r}"
            raise ValidationError(msg)

        rows = await collection.query(combine(eq(self._owner_field, owner_id), filter))
        present = [r for r in rows if r[sort_by] is not None]
        missing = [r for r in rows if r[sort_by] is None]
        present.sort(key=lambda r: r[sort_by], reverse=descending)
        ordered = present + missing

        items = [self._record(r) for r in ordered[offset : offset + limit]]
        return Page(items=items, total=len(rows), offset=offset, limit=limit)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _collection(self) -> Collection:
        return await self._store.open_collection(self._collection_name)

    async def _query_vector(self, query: Query) -> list[float]:
        if isinstance(query, str):
            if not query.strip():
                msg = "Search query text cannot be empty"
                raise ValidationError(msg)
            query = Content(text=query)
        if isinstance(query, Content):
            if self._cache is None:
                msg = "Cannot embed the query: no embedding cache configured"
                raise ValidationError(msg)
            return await self._cache.compute_or_fetch(query)
        vector = [float(v) for v in query]
        if not vector:
            msg = "Search query vector cannot be empty"
            raise ValidationError(msg)
        return vector

    def _hits(self, rows: list[dict[str, Any]], threshold: float | None) -> list[SearchHit]:
        hits: list[SearchHit] = []
        for row in rows:
            distance = row.pop(DISTANCE_KEY)
            if distance is None:
                continue
            similarity = similarity_from_distance(float(distance))
            if threshold is not None and similarity < threshold:
                continue
            hits.append(SearchHit(record=self._record(row), similarity=similarity, distance=float(distance)))
        logger.debug("Search returned %d of %d candidates", len(hits), len(rows))
        return hits

    def _record(self, row: dict[str, Any]) -> dict[str, Any]:
        record = dict(row)
        if self._vector_column in record:
            record[self._vector_column] = unpack_vector(record[self._vector_column])
        return record
