from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import Session, sessionmaker

# Local-only default. Production must provide DATABASE_URL explicitly.
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///.local/storefront.db"

_engine: Engine | None = None
_engine_url: str | None = None
_sessionmaker: sessionmaker[Session] | None = None


def database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_engine() -> Engine:
    """Return the engine for the current DATABASE_URL.

    Rebuilt whenever DATABASE_URL changes so each test can point at its own file.
    """

    global _engine, _engine_url, _sessionmaker

    url = database_url()
    if _engine is not None and _engine_url == url:
        return _engine

    if _engine is not None:
        _engine.dispose()

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(url, pool_pre_ping=True)

    _engine = engine
    _engine_url = url
    _sessionmaker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return engine


def db_session() -> Session:
    get_engine()
    assert _sessionmaker is not None
    return _sessionmaker()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request."""
    db = db_session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts; rolled back if the block raises."""
    db = db_session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
