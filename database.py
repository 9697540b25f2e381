"""
Relational store gateway.

One ``Database`` per app: it owns the SQLAlchemy engine (a bounded connection
pool) and the session factory. Routes get a session per request through
``get_db``; the session is always closed, which rolls back anything left
uncommitted.
"""
import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

log = logging.getLogger(__name__)

Base = declarative_base()


def _enable_sqlite_locking(engine) -> None:
    # pysqlite defers BEGIN until the first write, so two checkouts can both
    # read then deadlock on upgrade. Take the write lock when the transaction
    # starts instead; waiters queue on the busy timeout.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    def __init__(self, url: str, pool_size: int = 10, max_overflow: int = 0, pool_timeout: float = 30.0):
        self.url = make_url(url)
        kwargs = {"pool_pre_ping": True}

        if self.url.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False, "timeout": pool_timeout}
            if self.url.database in (None, "", ":memory:"):
                kwargs["poolclass"] = StaticPool
            else:
                kwargs.update(poolclass=QueuePool, pool_size=pool_size, max_overflow=max_overflow, pool_timeout=pool_timeout)
        else:
            kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_timeout=pool_timeout)

        self.engine = create_engine(self.url, **kwargs)
        if self.url.get_backend_name() == "sqlite":
            _enable_sqlite_locking(self.engine)

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine)
        log.info("Database configured (%s, pool_size=%s)", self.url.render_as_string(hide_password=True), pool_size)

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )

    def create_all(self) -> None:
        # models must be imported so their tables are registered on Base
        import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def dispose(self) -> None:
        self.engine.dispose()


# FastAPI dependency: one session per request
def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.database.SessionLocal()
    try:
        yield db
    finally:
        db.close()
