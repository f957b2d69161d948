"""SQLAlchemy engine and transaction helpers.

The service targets PostgreSQL in production but supports SQLite for local
development and CI. No declarative models are defined here; this module only
manages connection lifecycle and the mapping of driver failures onto
`PersistenceFailure`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from survey_takeout.config import load_config
from survey_takeout.logic.errors import PersistenceFailure

logger = logging.getLogger(__name__)


def _db_url() -> str:
    return load_config().database.dsn


# Module-level cached Engine to ensure a single shared connection/engine
_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None


def get_engine(url: str | None = None) -> Engine:
    """Return a singleton SQLAlchemy Engine for the given URL.

    For SQLite in-memory URLs, use a StaticPool to keep a single connection
    alive across sessions and threads during tests.
    """
    global _ENGINE, _ENGINE_URL
    resolved_url = url or _db_url()

    if _ENGINE is None or _ENGINE_URL != resolved_url:
        kwargs: dict = {"future": True, "pool_pre_ping": True}
        if resolved_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in resolved_url:
                kwargs["poolclass"] = StaticPool
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = create_engine(resolved_url, **kwargs)
        _ENGINE_URL = resolved_url
        logger.info("engine_created dialect=%s", _ENGINE.dialect.name)

    return _ENGINE


def reset_engine() -> None:
    """Dispose the cached engine so the next call rebuilds it."""
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None


def is_sqlite(engine: Engine | None = None) -> bool:
    eng = engine or get_engine()
    return (getattr(eng.dialect, "name", "") or "").lower() == "sqlite"


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise store failures as PersistenceFailure.

    Covers driver errors as well as engine-level ones such as pool timeouts
    and closed connections. IntegrityError passes through untouched; callers
    decide what a violated constraint means for them.
    """
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.error("store_unavailable operation=%s", operation, exc_info=True)
        raise PersistenceFailure(f"store unavailable during {operation}") from exc


@contextmanager
def unit_of_work(operation: str) -> Iterator[Connection]:
    """Yield a connection inside one committed-or-rolled-back transaction."""
    with store_errors(operation):
        with get_engine().begin() as conn:
            yield conn


@contextmanager
def read_only(operation: str) -> Iterator[Connection]:
    with store_errors(operation):
        with get_engine().connect() as conn:
            yield conn


__all__ = [
    "get_engine",
    "reset_engine",
    "is_sqlite",
    "store_errors",
    "unit_of_work",
    "read_only",
]
