"""Database bootstrap utilities for the takeout approval service.

Exposes engine/transaction helpers and the migrations runner that applies
the packaged SQL schema. Route handlers never touch connections directly;
data access lives in `survey_takeout/logic/repository_*.py`.
"""

from survey_takeout.db.base import get_engine, read_only, reset_engine, store_errors, unit_of_work
from survey_takeout.db.migrations_runner import apply_migrations

__all__ = [
    "get_engine",
    "reset_engine",
    "store_errors",
    "unit_of_work",
    "read_only",
    "apply_migrations",
]
