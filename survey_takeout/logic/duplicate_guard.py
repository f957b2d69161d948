"""Duplicate-submission fast path.

The check is advisory: the authoritative guard is the unique constraint on
responses (survey_id, dedupe_email, application_id). A store failure
during the check propagates as PersistenceFailure so the submission is
rejected rather than waved through.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.engine import Connection

from survey_takeout.db.base import read_only
from survey_takeout.logic import repository_responses as repo
from survey_takeout.logic import repository_surveys as surveys
from survey_takeout.logic.errors import NotFound
from survey_takeout.models.response_types import DuplicateCheck

logger = logging.getLogger(__name__)


def _check(conn: Connection, survey_id: str, respondent_email: str, application_ids: Iterable[str]) -> DuplicateCheck:
    if not surveys.survey_exists(conn, survey_id):
        raise NotFound(f"survey {survey_id} not found")
    matched = repo.find_prior_responses(conn, survey_id, repo.normalize_email(respondent_email), application_ids)
    return DuplicateCheck(is_duplicate=bool(matched), matched_response_ids=matched)


def check_duplicate(
    survey_id: str,
    respondent_email: str,
    application_ids: Iterable[str],
    conn: Connection | None = None,
) -> DuplicateCheck:
    """Whether a prior response covers any of `application_ids` for this respondent.

    Takeout status of the prior response is irrelevant.
    """
    apps = list(application_ids)
    if conn is not None:
        result = _check(conn, survey_id, respondent_email, apps)
    else:
        with read_only("check_duplicate") as c:
            result = _check(c, survey_id, respondent_email, apps)
    if result.is_duplicate:
        logger.info(
            "duplicate_detected survey=%s apps=%s matched=%s",
            survey_id,
            ",".join(apps),
            len(result.matched_response_ids),
        )
    return result


__all__ = ["check_duplicate"]
