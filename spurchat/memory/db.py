from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from spurchat.config import DATABASE_URL

# ---------------------------------------------------------------------------
# Database configuration
# ---------------------------------------------------------------------------

# Session factory. Every call to ``SessionLocal()`` returns a short-lived
# session; request handlers and worker threads each open their own.
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

# Declarative base class that the ORM models should inherit from.
Base = declarative_base()

_engine: Engine | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    # for every new connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_engine(url: str = DATABASE_URL) -> Engine:
    """(Re)bind ``SessionLocal`` to a new engine for ``url``.

    ``check_same_thread`` must be disabled for SQLite because the chat turn
    reads history and memories from worker threads.
    """
    global _engine
    is_sqlite = url.startswith("sqlite")
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=False,
    )
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    if _engine is not None:
        _engine.dispose()
    _engine = engine
    SessionLocal.configure(bind=engine)
    return engine


def get_engine() -> Engine:
    if _engine is None:
        configure_engine()
    return _engine


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def init_db() -> None:
    """Create tables if they do not yet exist.

    Importing ``spurchat.memory.models`` registers all subclasses with the
    Base metadata, after which ``metadata.create_all`` will build the schema.
    """
    # The models import needs to stay **inside** the function to avoid circular
    # imports, since models.py imports Base from here.
    from . import models  # noqa: F401  (side-effect import)

    Base.metadata.create_all(bind=get_engine())
