"""Engine and session management for the taskflow reference service.

SQLite is the default for local runs; any SQLAlchemy URL (PostgreSQL in
practice) can be supplied through `DATABASE_URL`.
"""

import logging
import os
from typing import Optional
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskflow.db")

# Milliseconds SQLite waits on a locked database before failing a write
SQLITE_BUSY_TIMEOUT_MS = 5000


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def _is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def get_engine_kwargs(database_url: str) -> dict:
    """Keyword arguments for ``create_engine``, derived from the URL and env only."""
    kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }
    if not _is_sqlite_url(database_url):
        kwargs.update(
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "5")),
            pool_timeout=int(os.getenv("DB_POOL_TIMEOUT_SEC", "30")),
        )
        return kwargs

    # Requests are served from a worker thread pool
    kwargs["connect_args"] = {"check_same_thread": False}
    if _is_memory_sqlite(database_url):
        # One shared connection, otherwise every thread sees its own empty database
        kwargs["poolclass"] = StaticPool
    return kwargs


def _configure_sqlite(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections get WAL mode and a busy timeout."""
    built = create_engine(database_url, **get_engine_kwargs(database_url))
    if _is_sqlite_url(database_url):
        event.listen(built, "connect", _configure_sqlite)
    return built


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Session:
    """Get database session (dependency for FastAPI)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the tasks, projects and tags tables if they do not exist yet."""
    from taskflow.database import models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Database schema ready on {target.url.render_as_string(hide_password=True)}")
