"""Problem+JSON utilities and global exception handlers.

Defines the RFC7807 media type and handler callables that turn domain
errors, permission failures and framework errors into
application/problem+json responses with a stable `code`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from survey_takeout.http.error_mapping import (
    ACTOR_MISSING,
    ERROR_MAP,
    INTERNAL_ERROR,
    PERMISSION_DENIED,
    REQUEST_INVALID,
)
from survey_takeout.logic.actor import PermissionDenied
from survey_takeout.logic.errors import DuplicateSubmission, ErrorKind, TakeoutError

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)


class ActorMissing(Exception):
    """No actor identity was supplied by the authentication collaborator."""


def problem_body(request: Request, entry: Dict[str, Any], detail: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "type": "about:blank",
        "title": entry["title"],
        "status": int(entry["status"]),
        "detail": detail,
        "code": entry["code"],
        "instance": request.url.path,
    }
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    body.update(extra)
    return body


def problem_response(request: Request, entry: Dict[str, Any], detail: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        problem_body(request, entry, detail, **extra),
        status_code=int(entry["status"]),
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def handle_takeout_error(request: Request, exc: TakeoutError) -> JSONResponse:
    entry = ERROR_MAP[exc.kind]
    extra: Dict[str, Any] = {"error_kind": exc.kind.value}
    if isinstance(exc, DuplicateSubmission):
        extra["matched_response_ids"] = exc.matched_response_ids
    if exc.kind is ErrorKind.PERSISTENCE_FAILURE:
        logger.error("problem_emitted code=%s path=%s", entry["code"], request.url.path, exc_info=exc)
    else:
        logger.info("problem_emitted code=%s path=%s", entry["code"], request.url.path)
    return problem_response(request, entry, exc.message, **extra)


async def handle_permission_denied(request: Request, exc: PermissionDenied) -> JSONResponse:
    logger.info("permission_denied role=%s capability=%s path=%s", exc.role, exc.capability, request.url.path)
    return problem_response(request, PERMISSION_DENIED, str(exc), capability=exc.capability)


async def handle_actor_missing(request: Request, exc: ActorMissing) -> JSONResponse:
    return problem_response(request, ACTOR_MISSING, str(exc) or "actor identity headers are required")


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status = int(getattr(exc, "status_code", 500) or 500)
    if isinstance(exc.detail, dict):
        body = dict(exc.detail)
        body.setdefault("status", status)
    else:
        body = {"type": "about:blank", "title": "Error", "status": status, "detail": str(exc.detail or "")}
        body["code"] = "RESOURCE_NOT_FOUND" if status == 404 else f"HTTP_{status}"
    return JSONResponse(body, status_code=status, media_type=PROBLEM_MEDIA_TYPE, headers=getattr(exc, "headers", None))


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return problem_response(
        request,
        REQUEST_INVALID,
        "Request validation failed",
        errors=jsonable_encoder(exc.errors()),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return problem_response(request, INTERNAL_ERROR, "An unexpected error occurred")


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "ActorMissing",
    "problem_body",
    "problem_response",
    "handle_takeout_error",
    "handle_permission_denied",
    "handle_actor_missing",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_unexpected_error",
]
