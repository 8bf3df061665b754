"""
Module: hub_kernel.db.engine
Responsibility: the process-wide engine and session factory, plus the
    table lifecycle used by scripts and tests.
Architecture position: Kernel > DB.  May import from db/base.py; reaches
    outward only in create_tables, which loads the module ORM registry.

Backends:
    - PostgreSQL (production and the concurrency tests): pooled connections
      at READ COMMITTED.  Stock, cohort and mentor rows are serialized with
      SELECT ... FOR UPDATE by the services that change them.
    - SQLite (development and the default test database): one shared
      connection.  FOR UPDATE is ignored; writers queue on the database lock.

Sessions keep attribute values after commit (``expire_on_commit=False``),
so a service can hand committed rows back to its caller.

Failure modes:
    - RuntimeError when a session or the engine is requested before
      init_engine_from_url().
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from hub_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")


@dataclass
class _Database:
    engine: Engine
    sessions: sessionmaker[Session]


_db: _Database | None = None


def _backend_options(url: URL, pool_size: int, max_overflow: int) -> dict[str, Any]:
    if url.get_backend_name() == "sqlite":
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """
    Build the engine for ``database_url`` and replace any previous one.

    ``pool_size`` and ``max_overflow`` apply to pooled backends only.
    """
    global _db
    reset_engine()

    url = make_url(database_url)
    engine = create_engine(url, echo=echo, **_backend_options(url, pool_size, max_overflow))
    _db = _Database(engine, sessionmaker(bind=engine, expire_on_commit=False))

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "backend": url.get_backend_name(),
            "database": url.database,
            "pooled": url.get_backend_name() != "sqlite",
        },
    )
    return engine


def _require() -> _Database:
    if _db is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _db


def get_engine() -> Engine:
    return _require().engine


def get_session() -> Session:
    return _require().sessions()


def get_session_factory() -> sessionmaker[Session]:
    """The shared factory; each thread in a concurrent caller takes its own session."""
    return _require().sessions


def is_postgres() -> bool:
    return _db is not None and _db.engine.dialect.name == "postgresql"


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    A session for a script or job run: committed on normal exit, rolled
    back on error, closed either way.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the kernel tables and every module table registered in the ORM registry."""
    from hub_kernel.db.base import Base
    from hub_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    from hub_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the pool and forget the engine."""
    global _db
    if _db is not None:
        _db.engine.dispose()
        _db = None


@atexit.register
def _dispose_on_exit() -> None:
    if _db is None:
        return
    try:
        _db.engine.dispose()
    except SQLAlchemyError:
        logger.warning("engine_dispose_failed", exc_info=True)
