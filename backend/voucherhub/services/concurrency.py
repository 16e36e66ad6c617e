# Overview: Unit-of-work and retry helpers shared by the voucher services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE with fresh attribute values.

    SQLite has no row locks and ignores the clause; there the version_id
    check at flush time catches the lost race instead.
    """
    return query.with_for_update().populate_existing()


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func() until it stops losing races, up to `attempts` times.

    A lock timeout or deadlock (OperationalError) and a lost optimistic
    version check (StaleDataError) roll the session back and try again
    after an exponential pause. The final failure propagates unchanged.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt == attempts:
                raise
            time.sleep(backoff_base * 2 ** (attempt - 1))


class UnitOfWork:
    """
    Explicit transaction boundary around the current session.

    Used as a context manager: commits on clean exit, rolls back on any
    exception and re-raises it. Callers that must abandon the work without
    raising call rollback() themselves.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session
        self._closed = False

    def __enter__(self) -> "UnitOfWork":
        self._closed = False
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._closed:
            return False
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False

    def lock(self, query):
        return lock_for_update(query)

    def add(self, instance) -> None:
        self.session.add(instance)

    def flush(self) -> None:
        self.session.flush()

    def commit(self) -> None:
        self.session.commit()
        self._closed = True

    def rollback(self) -> None:
        self.session.rollback()
        self._closed = True
