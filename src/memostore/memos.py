"""MemoService — the memo write path: embed, persist, then notify backups."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from memostore.exceptions import RecordNotFoundError, ValidationError
from memostore.models import Memo
from memostore.search.content import Content
from memostore.search.filters import and_, eq
from memostore.utils import new_id, now_ms, pack_vector, unpack_vector

if TYPE_CHECKING:
    from memostore.backup import BackupManager
    from memostore.search.cache import EmbeddingCache
    from memostore.store import Collection, EmbeddedStore

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class MemoService:
    """Creates, edits and deletes memos.

    Each write obtains the vector through the :class:`EmbeddingCache`,
    persists the row, then calls :meth:`BackupManager.trigger` without
    waiting for it.  Rows are returned as dicts with ``vector`` unpacked.
    """

    def __init__(
        self,
        store: EmbeddedStore,
        cache: EmbeddingCache,
        backup: BackupManager | None = None,
        *,
        collection: str = Memo.__tablename__,
    ) -> None:
        self._store = store
        self._cache = cache
        self._backup = backup
        self._collection_name = collection

    async def create_memo(
        self,
        uid: str,
        content: str,
        *,
        category_id: str | None = None,
        type: str = "text",  # noqa: A002
        is_public: bool = False,
        source: str | None = None,
    ) -> dict[str, Any]:
        """Embed *content* and insert a new memo for *uid*."""
        _require_text(content)
        vector = await self._cache.compute_or_fetch(Content(text=content))
        ts = now_ms()
        row = {
            "memo_id": new_id("memo"),
            "uid": uid,
            "content": content,
            "type": type,
            "category_id": category_id,
            "is_public": is_public,
            "source": source,
            "vector": pack_vector(vector),
            "created_at": ts,
            "updated_at": ts,
        }
        memos = await self._collection()
        await memos.add([row])
        logger.debug("Created memo %s for %s", row["memo_id"], uid)
        self._notify("create")
        return _as_record(row)

    async def update_memo(
        self,
        uid: str,
        memo_id: str,
        *,
        content: str | None = None,
        category_id: str | None = _UNSET,
        is_public: bool | None = None,
        source: str | None = _UNSET,
    ) -> dict[str, Any]:
        """Apply the given changes.  Edited content is re-embedded."""
        existing = await self.get_memo(uid, memo_id)
        values: dict[str, Any] = {}
        if content is not None and content != existing["content"]:
            _require_text(content)
            vector = await self._cache.compute_or_fetch(Content(text=content))
            values["content"] = content
            values["vector"] = pack_vector(vector)
        if category_id is not _UNSET:
            values["category_id"] = category_id
        if is_public is not None:
            values["is_public"] = is_public
        if source is not _UNSET:
            values["source"] = source
        if not values:
            return existing

        values["updated_at"] = now_ms()
        memos = await self._collection()
        await memos.update(self._key(uid, memo_id), values)
        self._notify("update")
        return await self.get_memo(uid, memo_id)

    async def delete_memo(self, uid: str, memo_id: str) -> None:
        """Delete a memo.  Raises ``RecordNotFoundError`` if it does not exist."""
        memos = await self._collection()
        deleted = await memos.delete(self._key(uid, memo_id))
        if not deleted:
            msg = f"No memo {memo_id!r} for owner {uid!r}"
            raise RecordNotFoundError(msg)
        self._notify("delete")

    async def get_memo(self, uid: str, memo_id: str) -> dict[str, Any]:
        memos = await self._collection()
        row = await memos.first(self._key(uid, memo_id))
        if row is None:
            msg = f"No memo {memo_id!r} for owner {uid!r}"
            raise RecordNotFoundError(msg)
        return _as_record(row)

    async def _collection(self) -> Collection:
        return await self._store.open_collection(self._collection_name)

    def _key(self, uid: str, memo_id: str) -> Any:
        return and_(eq("memo_id", memo_id), eq("uid", uid))

    def _notify(self, reason: str) -> None:
        if self._backup is not None:
            self._backup.trigger(reason)


def _require_text(content: str) -> None:
    if not content or not content.strip():
        msg = "Memo content cannot be empty"
        raise ValidationError(msg)


def _as_record(row: dict[str, Any]) -> dict[str, Any]:
    record = dict(row)
    record["vector"] = unpack_vector(record.get("vector"))
    return record
