"""
Database Configuration and Session Management

Engine, session factory and the ``get_db`` request dependency. Components
never reach for a global session: each one is handed the request's session
when it is constructed.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from config import Config
from errors import StoreFailure, StoreTimeout

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str = None) -> Engine:
    """Create an engine with a bounded pool and fixed timeouts."""
    url = url or Config.DATABASE_URL
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": Config.DB_TIMEOUT_SECONDS,
            },
        )

    return create_engine(
        url,
        pool_size=Config.DB_POOL_SIZE,
        max_overflow=0,            # pool_size is the hard cap on connections
        pool_timeout=Config.DB_TIMEOUT_SECONDS,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args={
            "connect_timeout": Config.DB_TIMEOUT_SECONDS,
            "read_timeout": Config.DB_TIMEOUT_SECONDS,
            "write_timeout": Config.DB_TIMEOUT_SECONDS,
        },
    )


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield one session per request and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# MySQL error numbers for lock wait timeouts and for refused or dropped connections
STORE_TIMEOUT_CODES = {1205, 2003, 2006, 2013, 3024}
STORE_TIMEOUT_MESSAGES = ("database is locked", "timed out", "lost connection")


def _is_timeout(error: OperationalError) -> bool:
    args = getattr(error.orig, "args", None) or ()
    if args and isinstance(args[0], int) and args[0] in STORE_TIMEOUT_CODES:
        return True
    message = str(error.orig or error).lower()
    return any(text in message for text in STORE_TIMEOUT_MESSAGES)


@contextmanager
def store_errors(db: Session):
    """Translate SQLAlchemy failures into the store error taxonomy."""
    try:
        yield
    except PoolTimeoutError as e:
        db.rollback()
        logger.error(f"Connection pool timed out: {e}")
        raise StoreTimeout() from e
    except OperationalError as e:
        db.rollback()
        if _is_timeout(e):
            logger.error(f"Database timed out: {e}")
            raise StoreTimeout() from e
        logger.error(f"Database error: {e}")
        raise StoreFailure() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error: {e}")
        raise StoreFailure() from e
