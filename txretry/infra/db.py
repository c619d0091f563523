"""Database helpers and SQLAlchemy session configuration."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from txretry.infra.config import settings


SQLITE_SCHEME_PREFIX = "sqlite:///"

# Session of the transaction currently open on this thread or task, if any.
_current_session: ContextVar[Optional[Session]] = ContextVar("txretry_current_session", default=None)


def _build_engine_options() -> dict[str, Any]:
    options: dict[str, Any] = {"future": True, "pool_pre_ping": True}

    if settings.DB_ECHO:
        options["echo"] = True

    if settings.DB_POOL_SIZE is not None:
        options["pool_size"] = settings.DB_POOL_SIZE

    if settings.DB_MAX_OVERFLOW is not None:
        options["max_overflow"] = settings.DB_MAX_OVERFLOW

    if settings.DB_POOL_TIMEOUT is not None:
        options["pool_timeout"] = settings.DB_POOL_TIMEOUT

    if settings.DB_POOL_RECYCLE is not None:
        options["pool_recycle"] = settings.DB_POOL_RECYCLE

    if is_sqlite_url(settings.DB_URL):
        connect_args: dict[str, Any]
        existing = options.get("connect_args")
        if isinstance(existing, Mapping):
            connect_args = dict(existing)
        else:
            connect_args = {}
        connect_args.setdefault("check_same_thread", False)
        options["connect_args"] = connect_args

    return options


def is_sqlite_url(url: str) -> bool:
    """Return ``True`` if the database URL points to a SQLite database."""

    return url.startswith(SQLITE_SCHEME_PREFIX)


def get_engine() -> Engine:
    """Create a SQLAlchemy engine configured with the application settings."""

    return create_engine(settings.DB_URL, **_build_engine_options())


_engine = get_engine()

SessionLocal = sessionmaker(
    bind=_engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def init_db() -> None:
    """Create database tables."""

    # imported here to avoid a circular import
    from txretry.domain.models import Base

    Base.metadata.create_all(bind=_engine)


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """Run the enclosed block in a brand-new transaction.

    The transaction commits when the block exits normally and rolls back when
    it raises; the session is always closed before control returns. While the
    block runs, :func:`in_transaction` reports ``True`` for the current
    thread or task.
    """

    db: Session = SessionLocal()
    token = _current_session.set(db)
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()
        _current_session.reset(token)


def in_transaction() -> bool:
    """Return ``True`` if a transaction is already open on this context."""

    return _current_session.get() is not None


def current_session() -> Optional[Session]:
    return _current_session.get()
