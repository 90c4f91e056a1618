"""
Database session management for the Article Insight service.

The engine URL comes from settings (DATABASE_URL). SQLite connections
get WAL mode and foreign key enforcement; workers and API requests each
open their own sessions from SessionLocal.
"""
import sqlite3
from typing import Generator

from sqlalchemy import create_engine, event, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from src.web.config import settings


def create_db_engine(url: str) -> Engine:
    """SQLite shares one connection across threads; other backends pool normally."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    return create_engine(url, pool_pre_ping=True, echo=False)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """
    Set SQLite pragmas on every new SQLite connection.

    Pragmas:
    - foreign_keys=ON: relations, jobs and feedback cascade with their entry
    - journal_mode=WAL: workers poll while the API reads
    - synchronous=NORMAL
    """
    if not isinstance(dbapi_conn, sqlite3.Connection):
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session that is closed after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_test_db() -> Generator[Session, None, None]:
    """
    Session on a fresh in-memory database with all tables.

    Example:
        @pytest.fixture
        def db():
            yield from get_test_db()
    """
    from src.web.models import Base

    test_engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=test_engine)

    db = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()
