# clinic_ledger/db/session.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from clinic_ledger.core.config import settings
from clinic_ledger.core.errors import (
    ConcurrencyConflict,
    LedgerError,
    StorageUnavailable,
    ValidationError,
)


def make_engine(db_uri: str, *, echo: bool = False) -> Engine:
    if db_uri.startswith("sqlite"):
        # worker threads share the file; writers wait on the db lock
        return create_engine(
            db_uri,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": 30,
            },
            future=True,
        )
    return create_engine(
        db_uri,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
        future=True,
    )


def make_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=eng,
        future=True,
    )


engine: Engine = make_engine(settings.SQLALCHEMY_DATABASE_URI,
                             echo=settings.SQL_ECHO)

SessionLocal = make_session_factory(engine)

# sqlite: "UNIQUE constraint failed", postgres: "duplicate key value",
# mysql: "Duplicate entry"
_UNIQUE_MARKERS = ("unique constraint", "duplicate key", "duplicate entry")


def is_unique_violation(e: IntegrityError) -> bool:
    msg = str(getattr(e, "orig", None) or e).lower()
    return any(m in msg for m in _UNIQUE_MARKERS)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    One unit of work: commit on success, roll back on any error.

    SQLAlchemy failures are re-raised as ledger errors so callers only
    ever see the ledger taxonomy.
    """
    try:
        yield db
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except StaleDataError as e:
        db.rollback()
        raise ConcurrencyConflict(
            "Record was modified by another request; retry with fresh data"
        ) from e
    except IntegrityError as e:
        db.rollback()
        if is_unique_violation(e):
            raise ConcurrencyConflict(
                "Write rejected by a unique constraint (concurrent change?)") from e
        raise ValidationError("Write rejected by a data constraint") from e
    except OperationalError as e:
        db.rollback()
        raise StorageUnavailable("Database unavailable") from e
    except Exception:
        db.rollback()
        raise
