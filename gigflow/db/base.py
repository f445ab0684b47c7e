"""SQLAlchemy engine and session plumbing for the application store."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker, scoped_session, Session
from sqlalchemy.pool import StaticPool

from config.settings import DATABASE_URL


class Base(DeclarativeBase):
    """Declarative base shared by every gigflow table."""


def _is_sqlite(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _ensure_sqlite_directory(database_url: str) -> None:
    database = make_url(database_url).database
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_sqlalchemy_engine(database_url: str = DATABASE_URL) -> Engine:
    """Build an engine; SQLite files get their directory created and FK checks on."""
    if not _is_sqlite(database_url):
        return create_engine(database_url, pool_pre_ping=True)

    _ensure_sqlite_directory(database_url)
    engine_kwargs = {}
    if database_url.endswith(":memory:"):
        # One shared connection, otherwise each session sees an empty database.
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        **engine_kwargs,
    )
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


_ENGINES: dict[str, Engine] = {}
_SESSION_FACTORIES: dict[str, Callable[[], Session]] = {}


def get_engine(database_url: str = DATABASE_URL) -> Engine:
    if database_url not in _ENGINES:
        _ENGINES[database_url] = create_sqlalchemy_engine(database_url)
    return _ENGINES[database_url]


def get_session_factory(database_url: str = DATABASE_URL):
    if database_url not in _SESSION_FACTORIES:
        _SESSION_FACTORIES[database_url] = scoped_session(
            sessionmaker(
                bind=get_engine(database_url),
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
            )
        )
    return _SESSION_FACTORIES[database_url]


def dispose_engine(database_url: str) -> None:
    """Drop the cached engine and session factory for ``database_url``."""
    factory = _SESSION_FACTORIES.pop(database_url, None)
    if factory is not None:
        factory.remove()
    engine = _ENGINES.pop(database_url, None)
    if engine is not None:
        engine.dispose()
