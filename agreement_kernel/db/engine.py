"""
Engine and session management for the agreement tables.

One engine per process, configured from a database URL: PostgreSQL with a
pre-pinged connection pool in production, SQLite for development and tests.
Agreement writes never depend on the isolation level; the store's version
compare-and-swap and the unique booking constraint serialize them on
either backend.

``session_scope`` owns the transaction: it commits on a clean exit and
rolls back on any exception, so a failed sign leaves nothing behind.
"""

import atexit
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agreement_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine not initialized; call init_engine_from_url() first."


def _sqlite_options(database: str | None) -> dict:
    options: dict = {"connect_args": {"check_same_thread": False}}
    if database in (None, "", ":memory:"):
        # every session must see the same in-memory database
        options["poolclass"] = StaticPool
    return options


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process engine and session factory, replacing any previous one.

    Pool settings apply to server databases only; SQLite ignores them.
    """
    global _engine, _session_factory

    url = make_url(database_url)
    backend = url.get_backend_name()
    if backend == "sqlite":
        options = _sqlite_options(url.database)
    else:
        options = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_pre_ping": True,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
            "isolation_level": "READ COMMITTED",
        }

    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, echo=echo, **options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": backend, "database": url.database, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Thread-safe factory; callers open one session per unit of work."""
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Iterator[Session]:
    """
    Transactional scope::

        with session_scope(factory) as session:
            store.create(...)
        # committed here, or rolled back if the block raised
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from agreement_kernel.db.base import Base

    # registers the agreement tables on Base.metadata
    import agreement_kernel.models  # noqa: F401

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    """Create any missing agreement tables. Existing tables are left alone."""
    metadata = _metadata()
    metadata.create_all(engine or get_engine())
    logger.info("tables_created", extra={"tables": sorted(metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    _metadata().drop_all(engine or get_engine())
    logger.warning("tables_dropped")


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
