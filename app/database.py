"""SQLAlchemy engine, session factory and declarative base.

Used only by the ``database`` storage backend. SQLite is the default;
any SQLAlchemy URL (PostgreSQL in production) works through DATABASE_URL.
"""

import os
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from app.config import settings

logger = logging.getLogger(__name__)

_is_sqlite = settings.database_url.startswith("sqlite")

if _is_sqlite:
    os.makedirs("data", exist_ok=True)

engine = create_engine(
    settings.database_url,
    # Requests run in FastAPI's thread pool, not the thread that opened the connection
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    pool_pre_ping=True,
)


@event.listens_for(engine, "connect")
def _sqlite_on_connect(dbapi_connection, connection_record):
    """SQLite leaves foreign keys off by default; cascades and SET NULL need them."""
    if not _is_sqlite:
        return
    cursor = dbapi_connection.cursor()
    for pragma in ("journal_mode=WAL", "foreign_keys=ON", "busy_timeout=5000"):
        cursor.execute(f"PRAGMA {pragma}")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


@contextmanager
def get_scoped_session() -> Iterator[Session]:
    """One session per unit of work (a request or a scheduled sweep)."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """Create any missing tables. Existing tables are left untouched."""
    import app.models  # noqa: F401  registers the tables on Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database tables ensured ({engine.url.get_backend_name()})")
