"""Engine and session wiring for the practice database.

SQLite is the default store (a ``practice.db`` file next to the package);
any SQLAlchemy URL in ``DATABASE_URL`` overrides it. Engines built here
enforce foreign keys on SQLite so a session can never point at a missing
client, and in-memory SQLite URLs share a single connection so every
``Session`` sees the same schema.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

LOGGER = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"
DATABASE_ECHO_ENV = "DATABASE_ECHO"

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "practice.db"
DEFAULT_DATABASE_URL = f"sqlite:///{DEFAULT_DB_PATH.as_posix()}"

_IN_MEMORY_DATABASES = (None, "", ":memory:")


def _read_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def is_sqlite_url(url: str) -> bool:
    return make_url(url).drivername.startswith("sqlite")


def resolve_database_url(raw_url: str | None = None) -> str:
    """Return the configured URL, creating the parent folder of a SQLite file."""

    if not raw_url:
        DEFAULT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        return DEFAULT_DATABASE_URL

    url = make_url(raw_url)
    if url.drivername.startswith("sqlite") and url.database not in _IN_MEMORY_DATABASES:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return url.render_as_string(hide_password=False)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def create_practice_engine(url: str, **overrides: Any) -> Engine:
    """Build an engine for ``url`` with the per-backend defaults applied."""

    options: dict[str, Any] = {"echo": _read_bool_env(DATABASE_ECHO_ENV)}
    if is_sqlite_url(url):
        options["connect_args"] = {"check_same_thread": False}
        if make_url(url).database in _IN_MEMORY_DATABASES:
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
    options.update(overrides)

    built = create_engine(url, **options)
    if is_sqlite_url(url):
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
    LOGGER.debug("Created engine for %s", built.url.render_as_string(hide_password=True))
    return built


SQLALCHEMY_DATABASE_URL = resolve_database_url(os.getenv(DATABASE_URL_ENV))

engine = create_practice_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session; routes commit through the services."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Transactional session for scripts running outside a request."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
