"""Typed error kinds raised by the approval and scoring core.

Every failure carries an `ErrorKind` tag so callers (HTTP layer, bulk
coordinator) can tell "reason missing" apart from "someone else already
handled this" without parsing messages.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_TRANSITION = "InvalidTransition"
    ALREADY_RESOLVED = "AlreadyResolved"
    MISSING_REASON = "MissingReason"
    NOT_FOUND = "NotFound"
    PERSISTENCE_FAILURE = "PersistenceFailure"
    DUPLICATE_SUBMISSION = "DuplicateSubmission"
    VALIDATION_FAILED = "ValidationFailed"


class TakeoutError(Exception):
    kind: ErrorKind

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class InvalidTransition(TakeoutError):
    kind = ErrorKind.INVALID_TRANSITION


class AlreadyResolved(TakeoutError):
    kind = ErrorKind.ALREADY_RESOLVED


class MissingReason(TakeoutError):
    kind = ErrorKind.MISSING_REASON


class NotFound(TakeoutError):
    kind = ErrorKind.NOT_FOUND


class PersistenceFailure(TakeoutError):
    kind = ErrorKind.PERSISTENCE_FAILURE


class DuplicateSubmission(TakeoutError):
    kind = ErrorKind.DUPLICATE_SUBMISSION

    def __init__(self, message: str = "", matched_response_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.matched_response_ids = list(matched_response_ids or [])


class ValidationFailed(TakeoutError):
    kind = ErrorKind.VALIDATION_FAILED


__all__ = [
    "ErrorKind",
    "TakeoutError",
    "InvalidTransition",
    "AlreadyResolved",
    "MissingReason",
    "NotFound",
    "PersistenceFailure",
    "DuplicateSubmission",
    "ValidationFailed",
]
