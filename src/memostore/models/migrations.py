"""SchemaVersion model — one row per applied migration."""

from __future__ import annotations

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel

from memostore.utils import now_ms


class SchemaVersion(SQLModel, table=True):
    """Records that migration *version* of *table_name* has been applied."""

    __tablename__ = "table_migrations"

    id: int | None = Field(default=None, primary_key=True)
    table_name: str = Field(index=True)
    version: int
    description: str = Field(default="")
    applied_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
