# Overview: Transaction and row-locking helpers over the request-scoped session.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import text

from ..extensions import db


def execute(sql: str, params: dict | None = None):
    """Execute a bound raw statement on the request-scoped session."""
    return db.session.execute(text(sql), params or {})


def fetch_one(sql: str, params: dict | None = None) -> dict | None:
    row = execute(sql, params).mappings().first()
    return dict(row) if row is not None else None


def fetch_all(sql: str, params: dict | None = None) -> list[dict]:
    return [dict(row) for row in execute(sql, params).mappings().all()]


@contextmanager
def atomic():
    """
    Unit of work: commit when the block finishes, roll back and re-raise on
    any exception. Nothing inside the block should commit on its own.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


@contextmanager
def savepoint():
    """
    Nested transaction for one item of a bulk operation. A failure rolls
    back only this item and re-raises so the caller can record it.
    """
    nested = db.session.begin_nested()
    try:
        yield
        nested.commit()
    except Exception:
        if nested.is_active:
            nested.rollback()
        raise


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()
