"""Declarative base, portable column types and dialect-aware INSERT."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def insert_for(db: AsyncSession, model: Any) -> Any:  # noqa: ANN401
    """INSERT construct supporting ``on_conflict_do_nothing``/``on_conflict_do_update``.

    Set-like tables (badges, unlocked rewards, votes) add rows with
    ON CONFLICT DO NOTHING and read ``rowcount`` to learn whether the row is new.
    """
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
