import logging
from contextlib import contextmanager
from typing import Any
from typing import Iterator

from sqlalchemy import Engine
from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from stackit.config import get_settings

logger = logging.getLogger(__name__)

# Create Base class
Base = declarative_base()


def _enable_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
    """Turn on FK enforcement (off by default in SQLite) and WAL for files."""

    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def make_engine(db_url: str, **kwargs) -> Engine:
    """Create a SQLAlchemy engine with the given URL and options.

    Args:
        db_url: Database connection URL
        **kwargs: Additional arguments for create_engine

    Returns:
        A SQLAlchemy Engine instance
    """
    connect_args = kwargs.pop("connect_args", {})
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        if "check_same_thread" not in connect_args:
            connect_args["check_same_thread"] = False
        # Concurrent writers wait on the file lock instead of failing at once
        connect_args.setdefault("timeout", 30)

    engine = create_engine(db_url, connect_args=connect_args, **kwargs)

    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_pragmas)

    return engine


def make_sessionmaker(engine: Engine) -> sessionmaker:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` keeps attributes readable after the unit of
    work committed, so services can hand detached rows back to callers.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


_default_engine: Engine | None = None
_default_session_factory: sessionmaker | None = None


def get_session_factory() -> sessionmaker:
    """Get the default session factory for the application.

    Uses DATABASE_URL from the settings or falls back to a local SQLite file
    (in-memory when ``TESTING`` is set). The engine is built lazily on first
    use so importing this module never touches the database.
    """
    global _default_engine, _default_session_factory

    if _default_session_factory is None:
        db_url = get_settings().resolved_database_url
        _default_engine = make_engine(db_url)
        _default_session_factory = make_sessionmaker(_default_engine)
        logger.debug("Created default engine for %s", _default_engine.url)

    return _default_session_factory


@contextmanager
def db_session(session_factory: Any = None) -> Iterator[Session]:
    """
    Unit-of-work context manager.

    Single way to manage database sessions in services and event handlers.

    1. Commit on success
    2. Roll back on error
    3. Always close the session

    Usage:
        with db_session(factory) as db:
            profile = crud.create_profile(db, ...)
            # Automatic commit + close

        # On error: automatic rollback + close, original exception re-raised

    Args:
        session_factory: Optional custom session factory

    Yields:
        SQLAlchemy Session object with automatic lifecycle management
    """
    factory = session_factory or get_session_factory()
    session = factory()

    try:
        yield session
        session.commit()
        logger.debug("Database session committed successfully")

    except Exception as e:
        session.rollback()
        logger.debug(f"Database session rolled back due to error: {e!r}")
        raise

    finally:
        session.close()


def initialize_database(engine: Engine = None) -> None:
    """Create all tables on the given engine (default engine when omitted)."""
    # Import the models so they are registered with Base
    from stackit.models import models  # noqa: F401

    if engine is None:
        get_session_factory()
        engine = _default_engine

    Base.metadata.create_all(bind=engine)
    logger.debug("Initialised tables: %s", sorted(Base.metadata.tables))
