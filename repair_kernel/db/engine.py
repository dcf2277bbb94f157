"""
Database connection for the repair workflow core.

One engine per process, set up by ``init_engine_from_url``. Repositories
receive a ``Session`` from the caller; ``session_scope`` is the usual way to
get one that commits on success and rolls back on error.

PostgreSQL connections run at READ COMMITTED; inventory rows are locked
explicitly with ``SELECT ... FOR UPDATE`` by ``SqlInventoryRepository``.
SQLite URLs share one connection (``StaticPool``) so an in-memory database
outlives individual sessions.
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from repair_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _engine_options(dialect: str, pool_size: int, max_overflow: int) -> dict[str, Any]:
    if dialect == "sqlite":
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """
    Create the process engine and session factory, replacing any previous one.

    ``pool_size`` and ``max_overflow`` apply to server databases only.
    """
    global _engine, _session_factory

    reset_engine()
    dialect = make_url(database_url).get_backend_name()
    _engine = create_engine(
        database_url, echo=echo, **_engine_options(dialect, pool_size, max_overflow),
    )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": dialect})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("No database engine; call init_engine_from_url() first")
    return _engine


def get_session() -> Session:
    if _session_factory is None:
        raise RuntimeError("No database engine; call init_engine_from_url() first")
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """One unit of work: commit on exit, roll back and re-raise on error."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from repair_kernel.db.base import Base
    import repair_kernel.models  # noqa: F401  registers the job and inventory tables

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    from repair_kernel.db.base import Base
    import repair_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine, if any, and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
