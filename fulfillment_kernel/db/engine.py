"""
Process-wide database engine for the SQL document repository.

One engine and one session factory per process.  ``init_engine_from_url``
builds both; everything else in this module reads them and fails with
``RuntimeError`` until it has been called.

PostgreSQL is the deployment target and gets a bounded ``QueuePool`` at
READ COMMITTED, which is enough because document writes are guarded by
``version`` columns and locked number counters rather than by isolation.
SQLite URLs are for tests and local runs: the engine is pinned to one
connection (``StaticPool``) so an in-memory database keeps its schema
across sessions.
"""

import atexit
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from fulfillment_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "database engine not initialized; call init_engine_from_url() first"


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """
    Build the engine and session factory for ``database_url``.

    Calling it again replaces the previous engine without disposing it;
    use ``reset_engine`` first when that matters.  The pool arguments only
    apply to non-SQLite URLs.
    """
    global _engine, _session_factory

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    # DTOs are built from rows after commit; keep attributes loaded.
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session() -> Session:
    """A new, unmanaged session; the caller commits and closes it."""
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    One unit of work: commit on clean exit, roll back and re-raise otherwise.

        with session_scope() as session:
            tracker = DeliveryFulfillmentTracker(SqlAlchemyRepository(session))
            tracker.create_delivery(order_id, quantities)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.warning(
            "session_rolled_back",
            extra={"error_type": type(exc).__name__},
        )
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every document, line and counter table on the current engine."""
    from fulfillment_kernel.db.base import Base
    from fulfillment_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (test teardown)."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
