"""Configuration utilities for the takeout approval service.

This module loads application configuration with the following rules:
- Primary source: `takeout_config.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
ROOT_CONFIG_FILE = Path("takeout_config.json")
DEFAULT_DSN = "sqlite+pysqlite:///:memory:"
logger = logging.getLogger(__name__)


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


class DatabaseConfig(BaseModel):
    dsn: str
    auto_apply_migrations: bool = Field(default=True)

    @field_validator("dsn")
    @classmethod
    def dsn_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class ApprovalConfig(BaseModel):
    bulk_max_items: int = Field(default=500, gt=0)
    bulk_max_workers: int = Field(default=4, gt=0)


class ScoringConfig(BaseModel):
    decimal_places: int = Field(default=2)

    @field_validator("decimal_places")
    @classmethod
    def places_in_range(cls, v: int) -> int:
        if v < 0 or v > 6:
            raise ValueError("scoring.decimal_places must be between 0 and 6")
        return v


class AppConfig(BaseModel):
    database: DatabaseConfig
    approvals: ApprovalConfig
    scoring: ScoringConfig


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:  # pragma: no cover
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def _as_bool(text: Optional[str]) -> bool:
    return str(text).strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> AppConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables
    2) Text files in `config/` (optional)
    3) takeout_config.json at project root (primary base)
    4) Safe defaults for development
    """

    base = _read_json_file(ROOT_CONFIG_FILE)

    def _base(path: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in path.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        return str(cur) if cur is not None else default

    dsn = (
        _env("TEST_DATABASE_URL")
        or _env("DATABASE_URL")
        or _read_config_file("database.url")
        or _base("database.dsn")
        or DEFAULT_DSN
    )
    auto_migrate = _env("AUTO_APPLY_MIGRATIONS") or _read_config_file("database.auto_apply_migrations") or _base("database.auto_apply_migrations", "true")

    bulk_max_items = _env("BULK_MAX_ITEMS") or _read_config_file("approvals.bulk_max_items") or _base("approvals.bulk_max_items", "500")
    bulk_max_workers = _env("BULK_MAX_WORKERS") or _read_config_file("approvals.bulk_max_workers") or _base("approvals.bulk_max_workers", "4")

    decimal_places = _env("SCORE_DECIMAL_PLACES") or _read_config_file("scoring.decimal_places") or _base("scoring.decimal_places", "2")

    try:
        cfg = AppConfig(
            database=DatabaseConfig(dsn=dsn, auto_apply_migrations=_as_bool(auto_migrate)),
            approvals=ApprovalConfig(
                bulk_max_items=int(str(bulk_max_items).strip()),
                bulk_max_workers=int(str(bulk_max_workers).strip()),
            ),
            scoring=ScoringConfig(decimal_places=int(str(decimal_places).strip())),
        )
        return cfg
    except (PydanticValidationError, ValueError) as e:
        logger.error("Invalid application configuration: %s", e)
        raise


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "ApprovalConfig",
    "ScoringConfig",
    "load_config",
]
