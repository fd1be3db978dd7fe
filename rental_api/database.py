# rental_api/database.py
from __future__ import annotations
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import SQLModel, create_engine, Session

from .exceptions import (
    ConflictError,
    DependencyExistsError,
    InternalError,
    InvalidRangeError,
    RentalError,
    TransientError,
)

logger = logging.getLogger(__name__)

# SQLSTATE codes used to classify driver errors
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
RESTRICT_VIOLATION = "23001"
CHECK_VIOLATION = "23514"
TRANSIENT_SQLSTATES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    "57014",  # query_canceled (statement/lock timeout)
}

# execution option marking a transaction that will write
WRITE_LOCK = "rental_write_lock"


def normalize_url(url: str) -> str:
    # SQLAlchemy + psycopg = postgresql+psycopg://
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    sslmode = os.getenv("DATABASE_SSLMODE", "").strip()
    if sslmode and url.startswith("postgresql") and "sslmode=" not in url:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}sslmode={sslmode}"
    return url


def _enable_sqlite_locking(engine: Engine) -> None:
    """
    SQLite has no SELECT ... FOR UPDATE. Write transactions (those opened by
    atomic()) take the database write lock when they begin, so read-decide-write
    sequences are serialized. Reads use a plain deferred BEGIN and, with WAL,
    never block a writer. Foreign keys are on so ON DELETE RESTRICT holds.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def make_engine(url: str) -> Engine:
    url = normalize_url(url)
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": float(os.getenv("SQLITE_BUSY_TIMEOUT", "5")),
            },
        )
        _enable_sqlite_locking(engine)
        return engine
    return create_engine(
        url,
        pool_pre_ping=True,   # auto-reconnect
        pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
    )


# --- read env ----------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL env var is required")

# --- engine ------------------------------
engine = make_engine(DATABASE_URL)


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session


def init_db(bind: Optional[Engine] = None) -> None:
    # Creates tables that don't exist; does not drop/alter
    SQLModel.metadata.create_all(bind or engine)


def _sqlstate(exc: SQLAlchemyError):
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def classify(exc: SQLAlchemyError) -> RentalError:
    """Translate a driver/ORM failure into one of the core error kinds."""
    code = _sqlstate(exc)
    message = str(getattr(exc, "orig", exc)).lower()

    if isinstance(exc, IntegrityError):
        if code == UNIQUE_VIOLATION or "unique constraint" in message:
            return ConflictError()
        if code in (FOREIGN_KEY_VIOLATION, RESTRICT_VIOLATION) or "foreign key" in message:
            return DependencyExistsError()
        if code == CHECK_VIOLATION or "check constraint" in message:
            return InvalidRangeError("Invalid data")
        return InternalError()

    if isinstance(exc, OperationalError):
        if code in TRANSIENT_SQLSTATES or "deadlock" in message or "database is locked" in message:
            return TransientError()

    return InternalError()


def begin_write(session: Session) -> None:
    """Start a write transaction on ``session``, ending any read it has open."""
    if session.in_transaction():
        session.commit()
    session.connection(execution_options={WRITE_LOCK: True})


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """
    Transaction scope for one core operation: commit on success, roll back
    every write on any failure. Storage errors leave as RentalError kinds.
    """
    try:
        begin_write(session)
        yield session
        session.commit()
    except RentalError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        error = classify(exc)
        if isinstance(error, TransientError):
            logger.warning("Transient storage failure, rolled back: %s", exc)
        elif isinstance(error, InternalError):
            logger.exception("Unexpected storage failure")
        raise error from exc
    except Exception:
        session.rollback()
        raise
