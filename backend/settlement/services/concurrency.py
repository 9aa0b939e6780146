# Overview: Transaction helpers: row locking, retry on contention, post-commit hooks.

from __future__ import annotations

import time
from typing import Callable

from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError


AFTER_COMMIT_KEY = "settlement.after_commit"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            discard_after_commit(session)
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def after_commit(session, callback: Callable[[], None]) -> None:
    """
    Register a callback to run once the current transaction commits.

    Callbacks registered in a transaction that rolls back are dropped.
    They only fire when the transaction is committed through commit() below,
    which runs them after the database commit has returned, so a callback
    may open and commit its own transaction on the same session.
    """
    session.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)


def discard_after_commit(session) -> None:
    session.info.pop(AFTER_COMMIT_KEY, None)


def commit(session) -> None:
    """Commit, then run the post-commit callbacks in registration order."""
    try:
        session.commit()
    except Exception:
        discard_after_commit(session)
        raise
    callbacks = session.info.pop(AFTER_COMMIT_KEY, [])
    for callback in callbacks:
        callback()


@event.listens_for(Session, "after_rollback")
def _drop_hooks_on_rollback(session):
    session.info.pop(AFTER_COMMIT_KEY, None)
