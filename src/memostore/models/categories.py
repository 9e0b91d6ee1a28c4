"""Category model — per-user memo categories."""

from __future__ import annotations

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel

from memostore.utils import new_id, now_ms


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    category_id: str = Field(default_factory=lambda: new_id("category"), primary_key=True)
    uid: str = Field(index=True)
    name: str
    color: str | None = Field(default=None)
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
    updated_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
