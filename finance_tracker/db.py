"""Persistence helpers around the shared SQLAlchemy session."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from flask import abort
from sqlalchemy.exc import SQLAlchemyError

from .models import db

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent
DEFAULT_DATABASE_URI = f"sqlite:///{PROJECT_ROOT / 'finance_tracker.db'}"

_MISSING_TABLE_MARKERS = ("no such table", "does not exist")

T = TypeVar("T")


def init_db() -> None:
    db.create_all()


def is_missing_table_error(exc: BaseException) -> bool:
    message = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in message for marker in _MISSING_TABLE_MARKERS)


def safe_fetch(fetch: Callable[[], List[T]], label: str) -> List[T]:
    """Run a read query; a missing schema is created on the spot and yields ``[]``.

    Any other database error is rolled back and re-raised for the caller's
    error handler.
    """
    try:
        return fetch()
    except SQLAlchemyError as exc:
        db.session.rollback()
        if is_missing_table_error(exc):
            logger.warning("Table missing while loading %s, creating schema", label)
            init_db()
            return []
        raise


def scoped(model, user_id: str):
    return model.query.filter_by(user_id=user_id)


def get_owned(model, row_id: str, user_id: str):
    return scoped(model, user_id).filter_by(id=row_id).first()


def get_owned_or_404(model, row_id: str, user_id: str):
    row = get_owned(model, row_id, user_id)
    if row is None:
        abort(404)
    return row


def commit() -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def delete_row(row) -> None:
    db.session.delete(row)
    commit()


def database_uri(path: Optional[str]) -> str:
    """Accept either a full SQLAlchemy URI or a bare SQLite file path."""
    if not path:
        return DEFAULT_DATABASE_URI
    if "://" in path:
        return path
    return f"sqlite:///{Path(path).resolve()}"
