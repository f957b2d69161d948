"""Response submission and respondent listing routes."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from survey_takeout.http.actor import requires
from survey_takeout.logic.actor import VIEW_REPORTS, Actor
from survey_takeout.logic.duplicate_guard import check_duplicate
from survey_takeout.logic.submission import list_respondents, submit_response
from survey_takeout.models.response_types import (
    DuplicateCheck,
    DuplicateCheckRequest,
    Respondent,
    SubmissionResult,
    SubmitResponseRequest,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/surveys/{survey_id}/responses",
    status_code=201,
    response_model=SubmissionResult,
    summary="Submit a survey response",
)
def post_response(survey_id: str, payload: SubmitResponseRequest) -> SubmissionResult:
    """Persist one response per selected application.

    Open to respondents; duplicate submissions are refused with 409 when the
    survey prevents duplicates.
    """
    return submit_response(survey_id, payload)


@router.post(
    "/surveys/{survey_id}/duplicate-check",
    response_model=DuplicateCheck,
    summary="Check whether a submission would be a duplicate",
)
def post_duplicate_check(survey_id: str, payload: DuplicateCheckRequest) -> DuplicateCheck:
    return check_duplicate(survey_id, payload.respondent_email, payload.application_ids)


@router.get(
    "/surveys/{survey_id}/respondents",
    response_model=List[Respondent],
    summary="List respondents with duplicate flags",
)
def get_respondents(
    survey_id: str,
    duplicate_filter: str = Query(default="all"),
    application_id: Optional[str] = Query(default=None),
    department_id: Optional[str] = Query(default=None),
    actor: Actor = Depends(requires(VIEW_REPORTS)),
) -> List[Respondent]:
    return list_respondents(
        survey_id,
        duplicate_filter=duplicate_filter,
        application_id=application_id,
        department_id=department_id,
    )


__all__ = ["router", "post_response", "post_duplicate_check", "get_respondents"]
