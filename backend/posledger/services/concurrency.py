# Overview: Transaction boundary and row locking shared by every mutating workflow.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InternalError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the unit of work
    serializes writers with BEGIN IMMEDIATE instead.
    """
    return query.with_for_update()


def _begin_write_transaction(timeout_ms: int) -> None:
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        # pysqlite opens its own transaction lazily before DML; only take the
        # write lock when the connection is not already inside one.
        raw = db.session.connection().connection.dbapi_connection
        if not raw.in_transaction:
            db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        db.session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


@contextmanager
def unit_of_work():
    """
    One atomic unit: everything inside commits together or not at all.

    - Domain errors (PosLedgerError) roll back and propagate unchanged.
    - Store errors roll back, are logged with context, and surface as InternalError.
    - A unit that outlived TRANSACTION_TIMEOUT_MS is rolled back instead of committed.

    Nothing here retries; re-submitting is the caller's decision.
    """
    timeout_ms = current_app.config.get("TRANSACTION_TIMEOUT_MS", 10000)
    started = time.monotonic()
    try:
        _begin_write_transaction(timeout_ms)
        yield db.session
        elapsed_ms = (time.monotonic() - started) * 1000
        if timeout_ms and elapsed_ms > timeout_ms:
            raise InternalError(
                "Transaction deadline exceeded",
                code="TRANSACTION_TIMEOUT",
                details={"elapsed_ms": int(elapsed_ms), "timeout_ms": timeout_ms},
            )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Unit of work failed: %s", exc.__class__.__name__)
        raise InternalError("Database operation failed", details={"cause": exc.__class__.__name__}) from exc
    except BaseException:
        db.session.rollback()
        raise
