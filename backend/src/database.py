"""Database session factory and configuration.

Provides database connectivity, session management and the transaction
helper used by the workflow engine for its check-then-write units.
"""

import logging
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, Session

from config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with pool settings suited to the backend.

    Pool settings only apply to PostgreSQL (not SQLite).
    """
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": echo,
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10

    engine = create_engine(database_url, **engine_kwargs)

    if database_url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_settings = get_settings()
engine = build_engine(_settings.DATABASE_URL, echo=_settings.DB_ECHO)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        @app.get("/documents")
        def list_documents(db: Session = Depends(get_db)):
            return db.query(Document).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_in_transaction(
    session: Session,
    work: Callable[[], T],
    retries: Optional[int] = None,
) -> T:
    """Run ``work`` as one atomic unit and commit it.

    Any exception rolls the whole unit back. Transient storage errors
    (OperationalError, e.g. lock timeouts) are retried ``retries`` times,
    re-running ``work`` from a clean session each time. Business errors are
    never retried.

    Args:
        session: Session the unit of work writes through
        work: Callable performing reads, checks and writes (no commit)
        retries: Override for DB_LOCK_RETRIES

    Returns:
        Whatever ``work`` returns
    """
    if retries is None:
        retries = get_settings().DB_LOCK_RETRIES
    attempts = retries + 1

    for attempt in range(1, attempts + 1):
        try:
            result = work()
            session.commit()
            return result
        except OperationalError:
            session.rollback()
            if attempt >= attempts:
                raise
            logger.warning(
                f"Transient storage error, retrying unit of work ({attempt}/{retries})",
                exc_info=True,
            )
        except Exception:
            session.rollback()
            raise

    raise RuntimeError("unreachable")  # pragma: no cover
