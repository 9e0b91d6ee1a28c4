"""User model — owners of memos and categories."""

from __future__ import annotations

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel

from memostore.utils import new_id, now_ms


class User(SQLModel, table=True):
    __tablename__ = "users"

    uid: str = Field(default_factory=lambda: new_id("user"), primary_key=True)
    nickname: str = Field(default="")
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
