"""Forward-only SQL migrations runner.

Applies .sql files in lexical order from the packaged `migrations/`
directory and records applied filenames in a `schema_migrations` table so a
file is never applied twice. Rollbacks are not supported.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

_JOURNAL_DDL = (
    "CREATE TABLE IF NOT EXISTS schema_migrations ("
    "filename TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
)


def _iter_sql_files(root: Path) -> Iterable[Path]:
    for p in sorted(root.glob("*.sql")):
        if "rollback" in p.name.lower():
            continue
        yield p


def _exec_sql_compat(conn: Connection, sql: str) -> None:
    """Execute a multi-statement SQL script.

    pysqlite refuses more than one statement per execute(), so SQLite scripts
    go through the driver's executescript(). Other dialects receive the full
    script as-is.
    """
    name = (getattr(conn.dialect, "name", "") or "").lower()
    if name == "sqlite":
        raw = conn.connection.driver_connection
        raw.executescript(sql)
        return
    conn.exec_driver_sql(sql)


def _applied(conn: Connection) -> set[str]:
    rows = conn.execute(sql_text("SELECT filename FROM schema_migrations")).fetchall()
    return {str(r[0]) for r in rows}


def apply_migrations(engine: Engine, migrations_dir: str | os.PathLike[str] | None = None) -> list[str]:
    """Apply pending migrations and return the filenames applied in this run."""
    root = Path(migrations_dir) if migrations_dir else MIGRATIONS_DIR
    if not root.exists():  # pragma: no cover - packaging error
        logger.warning("migrations_dir_missing path=%s", root)
        return []

    newly_applied: list[str] = []
    with engine.begin() as conn:
        conn.execute(sql_text(_JOURNAL_DDL))
        applied = _applied(conn)

    for sql_path in _iter_sql_files(root):
        fname = sql_path.name
        if fname in applied:
            continue
        sql = sql_path.read_text(encoding="utf-8")
        if not sql.strip():
            continue
        with engine.begin() as conn:
            _exec_sql_compat(conn, sql)
            conn.execute(
                sql_text("INSERT INTO schema_migrations (filename, applied_at) VALUES (:f, :at)"),
                {
                    "f": fname,
                    # ISO-8601 UTC without fractional seconds
                    "at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
                },
            )
        newly_applied.append(fname)
        logger.info("migration_applied file=%s", fname)
    return newly_applied


__all__ = ["apply_migrations", "MIGRATIONS_DIR"]
