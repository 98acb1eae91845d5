"""SQLAlchemy engine, session factory and transaction helpers."""
from typing import Callable, Optional, TypeVar
import logging
import time
from pathlib import Path

from sqlalchemy import create_engine, event, make_url
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.config.settings import settings
from app.core.exceptions import ConflictError, InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Global instances
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite needs ``check_same_thread=False`` because FastAPI runs sync
    endpoints in a threadpool, and a busy timeout so concurrent writers wait
    for the database lock instead of failing immediately.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
        database = make_url(database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, echo=echo, future=True, connect_args=connect_args)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used for one unit of work per operation."""
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def get_engine() -> Engine:
    """Get the process-wide engine, creating it on first use."""
    global _engine

    if _engine is None:
        _engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
        logger.info("Database engine initialized")

    return _engine


def get_session_factory() -> sessionmaker:
    """Get the process-wide session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())

    return _session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables. Used by tests and local development."""
    from app.models.base import Base
    import app.models  # noqa: F401  (registers all mappers)

    Base.metadata.create_all(bind=engine or get_engine())


def run_in_transaction(
    session_factory: sessionmaker,
    work: Callable[[Session], T],
    *,
    retries: int = 1,
    operation: str = "store transaction",
    retry_on_integrity_error: bool = False,
) -> T:
    """
    Run ``work`` inside one database transaction.

    The transaction commits when ``work`` returns and rolls back when it
    raises. Transient store failures are retried up to ``retries`` attempts;
    unique-key races are retried only when ``retry_on_integrity_error`` is
    set, which lets a losing writer re-read the winner's row. Once retries
    are exhausted the failure surfaces as ``InternalError``.
    """
    attempts = max(1, retries)
    for attempt in range(1, attempts + 1):
        try:
            with session_factory.begin() as session:
                return work(session)
        except IntegrityError as e:
            if not retry_on_integrity_error:
                logger.error(f"{operation} violated a constraint: {e.orig}")
                raise InternalError(f"{operation} failed") from e
            logger.info(f"{operation} lost a write race (attempt {attempt}/{attempts})")
            last_error: Exception = e
        except StaleDataError as e:
            logger.warning(f"{operation} hit a concurrent modification: {e}")
            raise ConflictError("The record was modified by another request. Please retry.") from e
        except OperationalError as e:
            logger.warning(f"{operation} failed transiently (attempt {attempt}/{attempts}): {e.orig}")
            last_error = e
        if attempt < attempts:
            time.sleep(0.05 * attempt)

    logger.error(f"{operation} failed after {attempts} attempts")
    raise InternalError(f"{operation} failed") from last_error
