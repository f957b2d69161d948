"""Response submission and respondent listing.

A submission fans out into one response per selected application, each
holding the same answers. Everything commits in one transaction; every
question response starts Active.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError

from survey_takeout.db.base import read_only, unit_of_work
from survey_takeout.logic import repository_responses as repo
from survey_takeout.logic import repository_surveys as surveys
from survey_takeout.logic.duplicate_guard import check_duplicate
from survey_takeout.logic.errors import DuplicateSubmission, NotFound, ValidationFailed
from survey_takeout.models.question_kind import QuestionKind, encode_answer
from survey_takeout.models.response_types import Respondent, SubmissionResult, SubmitResponseRequest

logger = logging.getLogger(__name__)

DUPLICATE_FILTERS = ("all", "duplicate", "unique")


def _selected_applications(request: SubmitResponseRequest) -> List[str]:
    seen: List[str] = []
    for raw in request.application_ids:
        app = str(raw or "").strip()
        if app and app not in seen:
            seen.append(app)
    if not seen:
        raise ValidationFailed("at least one application must be selected")
    return seen


def _validate_respondent(request: SubmitResponseRequest) -> None:
    if not request.respondent.name.strip():
        raise ValidationFailed("respondent name is required")
    email = request.respondent.email.strip()
    if not email or "@" not in email:
        raise ValidationFailed("a valid respondent email is required")


def _encode_answers(
    questions: List[Dict[str, Any]], request: SubmitResponseRequest
) -> List[tuple[str, QuestionKind, Dict[str, Any]]]:
    by_id = {q["question_id"]: q for q in questions}
    encoded: List[tuple[str, QuestionKind, Dict[str, Any]]] = []
    answered: set[str] = set()
    for answer in request.answers:
        question = by_id.get(answer.question_id)
        if question is None:
            raise ValidationFailed(f"question {answer.question_id} does not belong to this survey")
        if answer.question_id in answered:
            raise ValidationFailed(f"question {answer.question_id} answered more than once")
        answered.add(answer.question_id)
        kind = question["kind"]
        if kind is QuestionKind.HERO_COVER:
            continue
        try:
            columns = encode_answer(kind, answer.value)
        except (ValueError, TypeError) as exc:
            raise ValidationFailed(f"invalid answer for question {answer.question_id}: {exc}") from exc
        encoded.append((answer.question_id, kind, columns))

    missing = [
        q["question_id"]
        for q in questions
        if q["is_mandatory"] and q["kind"] is not QuestionKind.HERO_COVER and q["question_id"] not in answered
    ]
    if missing:
        raise ValidationFailed(f"mandatory questions not answered: {', '.join(missing)}")
    return encoded


def submit_response(survey_id: str, request: SubmitResponseRequest) -> SubmissionResult:
    """Persist a respondent's submission.

    Raises NotFound for an unknown survey, ValidationFailed for a malformed
    submission and DuplicateSubmission when the respondent already answered
    for one of the selected applications (surveys with duplicate prevention).
    """
    _validate_respondent(request)
    applications = _selected_applications(request)
    response_ids: List[str] = []
    try:
        with unit_of_work("submit_response") as conn:
            survey = surveys.get_survey(conn, survey_id)
            if survey is None:
                raise NotFound(f"survey {survey_id} not found")
            encoded = _encode_answers(surveys.list_questions(conn, survey_id), request)
            if survey["duplicate_prevention_enabled"]:
                check = check_duplicate(survey_id, request.respondent.email, applications, conn=conn)
                if check.is_duplicate:
                    raise DuplicateSubmission(
                        "respondent already submitted this survey for a selected application",
                        matched_response_ids=check.matched_response_ids,
                    )
            for app in applications:
                response_id = repo.insert_response(
                    conn,
                    survey_id,
                    request.respondent.name.strip(),
                    request.respondent.email,
                    app,
                    request.respondent.department_id,
                    prevent_duplicates=survey["duplicate_prevention_enabled"],
                )
                for question_id, kind, columns in encoded:
                    repo.insert_question_response(conn, response_id, question_id, kind, columns)
                response_ids.append(response_id)
    except IntegrityError as exc:
        logger.info("submission_conflict survey=%s apps=%s", survey_id, ",".join(applications))
        raise DuplicateSubmission("respondent already submitted this survey for a selected application") from exc

    logger.info(
        "response_submitted survey=%s responses=%s answers=%s",
        survey_id,
        len(response_ids),
        len(request.answers),
    )
    return SubmissionResult(survey_id=survey_id, response_ids=response_ids)


def list_respondents(
    survey_id: str,
    duplicate_filter: str = "all",
    application_id: str | None = None,
    department_id: str | None = None,
) -> List[Respondent]:
    """Respondents of a survey, optionally only duplicates or only unique ones."""
    if duplicate_filter not in DUPLICATE_FILTERS:
        raise ValidationFailed(f"duplicate_filter must be one of {', '.join(DUPLICATE_FILTERS)}")
    with read_only("list_respondents") as conn:
        if not surveys.survey_exists(conn, survey_id):
            raise NotFound(f"survey {survey_id} not found")
        rows = repo.list_respondents(conn, survey_id, application_id=application_id, department_id=department_id)
    if duplicate_filter == "duplicate":
        return [r for r in rows if r.is_duplicate]
    if duplicate_filter == "unique":
        return [r for r in rows if not r.is_duplicate]
    return rows


__all__ = ["DUPLICATE_FILTERS", "submit_response", "list_respondents"]
