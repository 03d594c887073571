"""Dialect-native INSERT ... ON CONFLICT builders.

PostgreSQL and SQLite both support ``on_conflict_do_update`` /
``on_conflict_do_nothing``; pick the matching ``insert`` for the session.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_for(db: AsyncSession, model: Any) -> Any:
    """Return an upsert-capable INSERT for ``model`` on the session's dialect."""
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise NotImplementedError(f"Upsert is not supported on dialect {dialect!r}") from None
