from __future__ import annotations
"""Transactional scope for service operations on the request-scoped session."""
from contextlib import contextmanager
from typing import Generator
from flask import current_app
from sqlalchemy.orm import Session
from budget_tracker import get_db


@contextmanager
def transaction() -> Generator[Session, None, None]:
    """Commit on normal exit; roll back and re-raise on any exception.

    Every read and write made through the yielded session belongs to the same
    database transaction, so read-then-write checks see one snapshot.
    """
    session = get_db()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        current_app.logger.debug('transaction rolled back', exc_info=True)
        raise
