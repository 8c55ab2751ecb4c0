from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import database_url
from app.models import Base


logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ships with FK enforcement off; cascades and references rely on it.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Shared database handle: one engine (connection pool) plus a session factory.

    Created once per process by the app factory and passed to whoever needs it;
    `dispose()` releases the pool on shutdown.
    """

    def __init__(self, url: str | None = None, *, engine: Engine | None = None) -> None:
        self.url = url or database_url()
        if engine is None:
            kwargs: dict = {"pool_pre_ping": True, "future": True}
            if self.url.startswith("sqlite"):
                # Sessions are handed across FastAPI's worker threads.
                kwargs["connect_args"] = {"check_same_thread": False}
            engine = create_engine(self.url, **kwargs)
        self.engine = engine
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, autoflush=False, autocommit=False
        )

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Database schema ready (%s)", self.engine.dialect.name)

    def dispose(self) -> None:
        self.engine.dispose()
