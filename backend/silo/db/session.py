"""Engine and session factory for the inventory database."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from silo.core.config import settings
from silo.db.base import Base


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def make_engine(url: str, **engine_kwargs) -> Engine:
    """Create an engine for ``url``.

    SQLite connections are shared across request threads and enforce foreign
    keys, so deleting a business cascades to its stock and ledger rows.
    """
    if is_sqlite(url):
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        engine_kwargs.setdefault("pool_size", 10)
        engine_kwargs.setdefault("max_overflow", 20)
        engine_kwargs.setdefault("pool_recycle", 3600)
    engine_kwargs.setdefault("pool_pre_ping", True)

    engine = create_engine(url, echo=settings.sql_echo, **engine_kwargs)

    if is_sqlite(url):
        @event.listens_for(engine, "connect")
        def _sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_db(bind: Engine) -> None:
    """Create any missing tables. Registers every model first."""
    import silo.models  # noqa: F401

    Base.metadata.create_all(bind=bind)


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session; uncommitted work is discarded on close."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]
