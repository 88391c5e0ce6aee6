# Overview: Row locking and atomic counter primitives shared by the ledger and sequences.

from __future__ import annotations

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite

from ..extensions import db

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def increment_or_create(model, *, keys: dict, column, amount, defaults: dict | None = None) -> None:
    """
    Atomically add ``amount`` to ``column`` on the row identified by ``keys``.

    When the row does not exist yet it is created with ``column = amount``.
    The increment is a single SQL statement evaluated by the database against
    the committed value, so concurrent callers on the same key serialize on
    the row lock instead of overwriting each other.

    ``keys`` must match a unique constraint on ``model``.
    """
    session = db.session
    name = column.key
    values = {**keys, **(defaults or {}), name: amount}
    touch = {"updated_at": func.now()} if hasattr(model, "updated_at") else {}

    insert = _UPSERT_INSERTS.get(session.get_bind().dialect.name)
    if insert is not None:
        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(keys),
            set_={name: column + getattr(stmt.excluded, name), **touch},
        )
        session.execute(stmt)
        return

    stmt = (
        update(model)
        .where(*[getattr(model, key) == value for key, value in keys.items()])
        .values({name: column + amount, **touch})
    )
    if not session.execute(stmt).rowcount:
        session.add(model(**values))
        session.flush()
