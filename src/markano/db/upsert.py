"""Dialect-aware INSERT construct for ON CONFLICT upserts."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, model: Any) -> Any:  # noqa: ANN401
    """Return an insert() for ``model`` that supports on_conflict_do_update.

    PostgreSQL in production, SQLite for local runs and tests. Both expose
    the same ``on_conflict_do_update(index_elements=..., set_=...)`` and
    ``excluded`` API.
    """
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
