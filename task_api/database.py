"""SQLite storage accessor.

One ``Database`` owns the engine for the whole process. It wraps a single
DBAPI connection (``StaticPool``) that every request session shares, so
statements run in submission order and SQLite's own locking does the rest.
"""

import logging
from pathlib import Path
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# AFTER UPDATE keeps updated_at fresh for full and partial updates alike.
# The inner UPDATE does not re-fire the trigger (recursive_triggers is off).
UPDATE_TIMESTAMP_TRIGGER = """
CREATE TRIGGER IF NOT EXISTS update_task_timestamp
AFTER UPDATE ON tasks
BEGIN
    UPDATE tasks SET updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
    WHERE id = NEW.id;
END
"""


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


class Database:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.url = "sqlite://" if settings.in_memory else f"sqlite:///{settings.DB_PATH}"
        self.engine: Engine = create_engine(
            self.url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.is_development,
        )
        event.listen(self.engine, "connect", _set_sqlite_pragmas)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._closed = False

    def initialize(self) -> None:
        # models must be imported so the tasks table is registered on Base
        from . import models  # noqa: F401

        if not self.settings.in_memory:
            Path(self.settings.DB_PATH).parent.mkdir(parents=True, exist_ok=True)

        Base.metadata.create_all(bind=self.engine)
        with self.engine.begin() as conn:
            conn.exec_driver_sql(UPDATE_TIMESTAMP_TRIGGER)
        logger.info("Database initialized successfully (%s)", self.settings.DB_PATH)

    def session(self) -> Session:
        return self.SessionLocal()

    def close(self) -> None:
        if self._closed:
            return
        self.engine.dispose()
        self._closed = True
        logger.info("Database connection closed")

    @property
    def closed(self) -> bool:
        return self._closed


# Dependency to get a database session bound to the application's Database
async def get_db(request: Request) -> AsyncIterator[Session]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
