"""Memo model — the vector-bearing record searched by the engine."""

from __future__ import annotations

from sqlalchemy import BigInteger, LargeBinary
from sqlmodel import Field, SQLModel

from memostore.utils import new_id, now_ms, unpack_vector


class Memo(SQLModel, table=True):
    """A user note with its content embedding.

    ``vector`` holds the packed embedding (see :func:`memostore.utils.pack_vector`);
    it is replaced whenever the content is edited.  Timestamps are epoch
    milliseconds.
    """

    __tablename__ = "memos"

    memo_id: str = Field(default_factory=lambda: new_id("memo"), primary_key=True)
    uid: str = Field(index=True)
    content: str = Field(default="")
    type: str = Field(default="text")
    category_id: str | None = Field(default=None, index=True)
    is_public: bool = Field(default=False)
    source: str | None = Field(default=None)
    vector: bytes | None = Field(default=None, sa_type=LargeBinary)
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
    updated_at: int = Field(default_factory=now_ms, sa_type=BigInteger)

    @property
    def embedding(self) -> list[float] | None:
        """The unpacked content vector."""
        return unpack_vector(self.vector)
