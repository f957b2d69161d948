"""Central error mapping for problem+json responses.

Single source of truth for mapping error kinds to problem codes and HTTP
statuses. Handlers must read from here instead of hardcoding strings or
numbers.
"""

from __future__ import annotations

from survey_takeout.logic.errors import ErrorKind

ERROR_MAP = {
    ErrorKind.INVALID_TRANSITION: {"code": "TAKEOUT_INVALID_TRANSITION", "status": 409, "title": "Invalid Transition"},
    ErrorKind.ALREADY_RESOLVED: {"code": "TAKEOUT_ALREADY_RESOLVED", "status": 409, "title": "Already Resolved"},
    ErrorKind.MISSING_REASON: {"code": "TAKEOUT_REASON_REQUIRED", "status": 422, "title": "Reason Required"},
    ErrorKind.NOT_FOUND: {"code": "RESOURCE_NOT_FOUND", "status": 404, "title": "Not Found"},
    ErrorKind.PERSISTENCE_FAILURE: {"code": "STORE_UNAVAILABLE", "status": 503, "title": "Service Unavailable"},
    ErrorKind.DUPLICATE_SUBMISSION: {"code": "RESPONSE_DUPLICATE", "status": 409, "title": "Duplicate Submission"},
    ErrorKind.VALIDATION_FAILED: {"code": "REQUEST_INVALID", "status": 422, "title": "Invalid Request"},
}

PERMISSION_DENIED = {"code": "PERMISSION_DENIED", "status": 403, "title": "Forbidden"}
ACTOR_MISSING = {"code": "ACTOR_MISSING", "status": 401, "title": "Unauthorized"}
REQUEST_INVALID = {"code": "REQUEST_INVALID", "status": 422, "title": "Invalid Request"}
INTERNAL_ERROR = {"code": "INTERNAL_ERROR", "status": 500, "title": "Internal Server Error"}

__all__ = ["ERROR_MAP", "PERMISSION_DENIED", "ACTOR_MISSING", "REQUEST_INVALID", "INTERNAL_ERROR"]
