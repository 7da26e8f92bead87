"""
SQLAlchemy engine setup and transaction helpers shared by the stores.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Table, create_engine, event, func
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, TimeoutError as PoolTimeoutError
from sqlalchemy.pool import StaticPool

from backend.errors import StorageUnavailable


logger = logging.getLogger(__name__)

# Execution option that makes a SQLite transaction take the write lock at BEGIN.
IMMEDIATE = "read_tracker_immediate"

# SQL function registered on SQLite connections; SQLite's lower() only folds ASCII.
CASEFOLD = "casefold"


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def create_db_engine(database_url: str, timeout: float = 5.0) -> Engine:
    """
    Create an engine for the tracker database.

    SQLite connections are switched to manual transaction control so that
    write transactions can start with ``BEGIN IMMEDIATE``. That serializes
    concurrent writers at BEGIN instead of letting two transactions read
    the same state and race to upgrade their locks.

    Args:
        database_url: SQLAlchemy URL
        timeout: Seconds to wait for a lock (SQLite) or pooled connection

    Returns:
        Configured engine
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        engine = create_engine(url, pool_pre_ping=True, pool_timeout=timeout)
        logger.info(f"Initialized database engine for {url.get_backend_name()}")
        return engine

    connect_args = {"timeout": timeout, "check_same_thread": False}
    if not url.database or url.database == ":memory:":
        engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    else:
        engine = create_engine(url, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys = ON")
        dbapi_connection.create_function(CASEFOLD, 1, _casefold, deterministic=True)

    @event.listens_for(engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    logger.info(f"Initialized SQLite database at {url.database or ':memory:'}")
    return engine


@contextmanager
def transaction(engine: Engine, write: bool = False) -> Iterator[Connection]:
    """
    Run a block inside one database transaction.

    Driver-level failures (lost connection, lock timeout, pool exhaustion)
    are raised as StorageUnavailable. They are not retried here.

    Args:
        engine: Database engine
        write: Take the write lock up front (SQLite ``BEGIN IMMEDIATE``)
    """
    try:
        with engine.connect() as conn:
            if write:
                conn = conn.execution_options(**{IMMEDIATE: True})
            with conn.begin():
                yield conn
    except IntegrityError:
        raise
    except (DBAPIError, PoolTimeoutError) as e:
        logger.error(f"Database operation failed: {e}")
        raise StorageUnavailable(f"Database unavailable: {e}") from e


def insert_ignore(conn: Connection, table: Table, values: dict, index_elements: list[str]) -> bool:
    """
    Insert a row unless one with the same key already exists.

    Uses the dialect's ``ON CONFLICT DO NOTHING`` so concurrent callers can
    never create two rows for one key.

    Returns:
        True if a row was inserted
    """
    dialect = conn.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        nested = conn.begin_nested()
        try:
            conn.execute(table.insert().values(**values))
        except IntegrityError:
            nested.rollback()
            return False
        nested.commit()
        return True

    stmt = dialect_insert(table).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    result = conn.execute(stmt)
    return result.rowcount > 0


def fold_case(dialect_name: str, expr):
    """
    Case-fold a SQL text expression for case-insensitive comparison.

    Pair with ``fold_text`` on the Python side so both sides fold the same way.
    """
    if dialect_name == "sqlite":
        return getattr(func, CASEFOLD)(expr)
    return func.lower(expr)


def fold_text(dialect_name: str, text: str) -> str:
    """Python-side counterpart of ``fold_case``."""
    if dialect_name == "sqlite":
        return _casefold(text)
    return text.lower()
