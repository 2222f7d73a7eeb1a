"""Database session management."""

from collections.abc import Generator
from pathlib import Path
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from tableside.core.config import settings

connect_args = {}
pool_config = {}

if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
    pool_config = {
        "pool_pre_ping": True,
    }
    # File-backed SQLite needs its directory to exist before the first connect
    _sqlite_path = make_url(settings.database_url).database
    if _sqlite_path and _sqlite_path != ":memory:":
        Path(_sqlite_path).parent.mkdir(parents=True, exist_ok=True)
else:
    # PostgreSQL connection pooling configuration
    pool_config = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=False,
    **pool_config,
)

# Enable foreign key enforcement for SQLite
if settings.database_url.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
