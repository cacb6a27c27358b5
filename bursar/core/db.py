# bursar/core/db.py - SQLAlchemy database setup with connection pooling
from contextlib import contextmanager
from typing import Generator, Iterator, Optional
import logging
import threading
import time

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from bursar.core.config import settings

logger = logging.getLogger(__name__)

# Connection execution option naming the SQLite BEGIN mode (DEFERRED, IMMEDIATE)
SQLITE_BEGIN_OPTION = "sqlite_begin"


class DatabaseManager:
    """Database manager with lazy initialization and health monitoring"""

    def __init__(self):
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self._initialized = False
        self._lock = threading.Lock()

    def initialize(self, database_url: Optional[str] = None):
        """Initialize database engine and session maker"""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            url = database_url or settings.DATABASE_URL
            try:
                self.engine = self._create_engine(url)
                self.SessionLocal = sessionmaker(
                    autocommit=False,
                    autoflush=False,
                    expire_on_commit=False,
                    bind=self.engine,
                )
                self._setup_event_listeners(url)
                self._initialized = True
                logger.info("Database initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize database: {e}")
                raise

    def _create_engine(self, url: str) -> Engine:
        """Create SQLAlchemy engine; SQLite gets a single shared connection"""
        engine_args = {
            "url": url,
            "echo": settings.DATABASE_ECHO,
        }

        if url.startswith("sqlite"):
            engine_args["connect_args"] = {
                "check_same_thread": False,
                "timeout": 30,  # seconds to wait on SQLite locks
            }
            if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
                # An in-memory database only exists on its one connection
                engine_args["poolclass"] = StaticPool
        else:
            engine_args.update({
                "poolclass": QueuePool,
                "pool_size": settings.DATABASE_POOL_SIZE,
                "max_overflow": settings.DATABASE_MAX_OVERFLOW,
                "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
                "pool_recycle": settings.DATABASE_POOL_RECYCLE,
                "pool_pre_ping": True,
                "connect_args": {
                    "connect_timeout": 10,
                    "application_name": f"bursar_{settings.ENV}",
                    "options": "-c timezone=UTC",
                },
            })

        return create_engine(**engine_args)

    def _setup_event_listeners(self, url: str):
        """Set up SQLAlchemy event listeners for monitoring"""
        install_sqlite_pragmas(self.engine)

        @event.listens_for(self.engine, "before_cursor_execute")
        def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if settings.is_development:
                context._query_start_time = time.time()

        @event.listens_for(self.engine, "after_cursor_execute")
        def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if settings.is_development and hasattr(context, "_query_start_time"):
                total = time.time() - context._query_start_time
                if total > 0.1:  # Log queries taking more than 100ms
                    logger.warning(f"Slow query ({total:.3f}s): {statement[:100]}...")

    def get_session(self) -> Generator[Session, None, None]:
        """
        Get database session with automatic cleanup and error handling.

        Yields:
            Session: SQLAlchemy database session
        """
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions with automatic rollback.

        Usage:
            with db_manager.transaction() as session:
                session.add(expense)
                # Automatically commits on success, rolls back on error
        """
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Transaction error: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        """
        Perform database health check.

        Returns:
            Dict with health status information
        """
        if not self._initialized:
            self.initialize()
        try:
            start_time = time.time()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {
                "status": "healthy",
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

    def close(self):
        """Close database connections and cleanup"""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")


def install_sqlite_pragmas(engine: Engine):
    """
    Turn on foreign keys for SQLite connections and let SQLAlchemy emit BEGIN
    itself, so SAVEPOINTs (bulk billing) nest inside the real transaction.
    Writers ask for BEGIN IMMEDIATE through the SQLITE_BEGIN_OPTION
    execution option. No-op for other backends.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION)
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to get database session.

    Usage in FastAPI:
        @router.get("/invoices")
        def list_invoices(db: Session = Depends(get_db)):
            ...
    """
    yield from db_manager.get_session()


def get_engine() -> Engine:
    """Get SQLAlchemy engine instance"""
    if not db_manager._initialized:
        db_manager.initialize()
    return db_manager.engine


def init_db(engine: Optional[Engine] = None):
    """Create all tables (development and tests; production uses Alembic)"""
    from bursar.models import Base

    Base.metadata.create_all(bind=engine or get_engine())


__all__ = [
    "get_db",
    "get_engine",
    "init_db",
    "install_sqlite_pragmas",
    "db_manager",
]
