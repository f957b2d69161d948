"""FastAPI application factory for the takeout approval service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from survey_takeout.config import load_config
from survey_takeout.db.base import get_engine
from survey_takeout.db.migrations_runner import apply_migrations
from survey_takeout.http.problem import (
    ActorMissing,
    handle_actor_missing,
    handle_http_exception,
    handle_permission_denied,
    handle_request_validation_error,
    handle_takeout_error,
    handle_unexpected_error,
)
from survey_takeout.http.request_id import RequestIdMiddleware
from survey_takeout.logging_setup import configure_logging
from survey_takeout.logic.actor import PermissionDenied
from survey_takeout.logic.errors import TakeoutError
from survey_takeout.routes import api_router

logger = logging.getLogger(__name__)


def health_check() -> dict:
    """Report store reachability without raising."""
    try:
        with get_engine().connect() as conn:
            conn.execute(sql_text("SELECT 1"))
        return {"status": "ok", "db": True}
    except SQLAlchemyError as e:
        logger.error("health_db_check_failed", exc_info=True)
        return {"status": "degraded", "db": False, "reason": str(e)}


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    cfg = load_config()
    if cfg.database.auto_apply_migrations:
        try:
            applied = apply_migrations(get_engine())
            logger.info("startup_migrations applied=%s", len(applied))
        except SQLAlchemyError:
            # Keep serving so /health can report the store as degraded
            logger.error("startup_migrations_failed", exc_info=True)
    else:
        logger.info("startup_migrations_skipped AUTO_APPLY_MIGRATIONS disabled")
    yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Survey Takeout Approval Service", lifespan=_lifespan)
    app.add_exception_handler(TakeoutError, handle_takeout_error)
    app.add_exception_handler(PermissionDenied, handle_permission_denied)
    app.add_exception_handler(ActorMissing, handle_actor_missing)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    def health() -> dict:
        return health_check()

    return app


__all__ = ["create_app", "health_check"]
