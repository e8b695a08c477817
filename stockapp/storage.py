"""Engine set-up and schema housekeeping for the stock room database."""

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, OperationalError

from stockapp.errors import StorageTimeoutError
from stockapp.extensions import db

logger = logging.getLogger(__name__)

_LOCK_MESSAGES = ("database is locked", "database table is locked", "lock timeout")


def _sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_manual_transactions(dbapi_connection, connection_record):
    # Hand transaction control to SQLAlchemy so the begin hook below is used.
    dbapi_connection.isolation_level = None


def _sqlite_begin(connection):
    connection.exec_driver_sql("BEGIN IMMEDIATE")


def _is_memory_database(engine: Engine) -> bool:
    return engine.url.database in (None, "", ":memory:")


def configure_engine(engine: Engine) -> None:
    """Install per-connection settings the guarded stock updates rely on.

    SQLite only honours ``ON DELETE CASCADE`` with ``foreign_keys`` enabled.
    File databases also open every transaction with ``BEGIN IMMEDIATE`` so
    competing writers queue on the busy timeout instead of failing when a read
    lock is upgraded mid-transaction. An in-memory database lives on a single
    shared connection, so it keeps the driver's own transaction handling.
    """

    if engine.dialect.name != "sqlite":
        return
    if not event.contains(engine, "connect", _sqlite_foreign_keys):
        event.listen(engine, "connect", _sqlite_foreign_keys)
    if _is_memory_database(engine):
        return
    if not event.contains(engine, "connect", _sqlite_manual_transactions):
        event.listen(engine, "connect", _sqlite_manual_transactions)
    if not event.contains(engine, "begin", _sqlite_begin):
        event.listen(engine, "begin", _sqlite_begin)


def ping_database() -> None:
    """Raise :class:`OperationalError` when the configured database is unreachable."""

    with db.engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def ensure_item_schema(engine: Engine) -> None:
    """Backfill columns added after the first release onto legacy ``item`` tables."""

    inspector = inspect(engine)
    try:
        item_columns = {col["name"] for col in inspector.get_columns("item")}
    except (NoSuchTableError, OperationalError):
        return

    required_columns = {
        "size": "VARCHAR",
        "unit_name": "VARCHAR NOT NULL DEFAULT 'case'",
        "storage_class": "VARCHAR NOT NULL DEFAULT 'normal'",
    }
    missing = [
        (name, column_type)
        for name, column_type in required_columns.items()
        if name not in item_columns
    ]
    if not missing:
        return

    with engine.begin() as conn:
        for column_name, column_type in missing:
            logger.info("Adding missing item column %s", column_name)
            conn.execute(text(f"ALTER TABLE item ADD COLUMN {column_name} {column_type}"))


def is_lock_timeout(exc: OperationalError) -> bool:
    details = str(getattr(exc, "orig", exc)).lower()
    return any(marker in details for marker in _LOCK_MESSAGES)


@contextmanager
def transaction():
    """Run the enclosed work as one all-or-nothing session transaction.

    Any exception rolls the session back before propagating; lock waits that
    exceed the busy timeout are reported as :class:`StorageTimeoutError`.
    """

    try:
        yield db.session
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        if is_lock_timeout(exc):
            logger.warning("Stock transaction timed out waiting for a lock: %s", exc)
            raise StorageTimeoutError() from exc
        raise
    except Exception:
        db.session.rollback()
        raise
