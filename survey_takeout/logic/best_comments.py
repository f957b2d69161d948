"""Best-comment curation.

A free-text answer (Text question, or the comment attached to a Rating) can
be marked as noteworthy by an admin and later receive feedback from an IT
Lead. Curation never looks at takeout status.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from survey_takeout.db.base import read_only, unit_of_work
from survey_takeout.logic import repository_best_comments as best_repo
from survey_takeout.logic import repository_responses as repo
from survey_takeout.logic.actor import Actor
from survey_takeout.logic.errors import MissingReason, NotFound, PersistenceFailure
from survey_takeout.logic.timestamps import utc_now_iso
from survey_takeout.models.question_kind import comment_text
from survey_takeout.models.response_types import BestComment

logger = logging.getLogger(__name__)


def mark_best(response_id: str, question_id: str, actor: Actor) -> BestComment:
    """Mark the comment of (response, question) as best.

    Marking an already-marked comment returns the existing record.
    """
    try:
        with unit_of_work("mark_best") as conn:
            record = repo.get_question_response(conn, response_id, question_id)
            if record is None:
                raise NotFound(f"question response ({response_id}, {question_id}) not found")
            if comment_text(record.answer()) is None:
                raise NotFound(f"question response ({response_id}, {question_id}) has no comment")
            existing = best_repo.get_best_comment(conn, record.question_response_id)
            if existing is not None:
                return existing
            best_repo.insert_best_comment(conn, record.question_response_id, actor.actor_id, utc_now_iso())
            created = best_repo.get_best_comment(conn, record.question_response_id)
            if created is None:
                raise PersistenceFailure("best comment was not readable after insert")
    except IntegrityError:
        # Concurrent mark of the same comment; the first one stands.
        with read_only("mark_best_reread") as conn:
            record = repo.get_question_response(conn, response_id, question_id)
            existing = best_repo.get_best_comment(conn, record.question_response_id) if record else None
        if existing is None:
            raise
        return existing

    logger.info("best_comment_marked rs=%s q=%s curator=%s", response_id, question_id, actor.actor_id)
    return created


def unmark(response_id: str, question_id: str, actor: Optional[Actor] = None) -> None:
    """Remove the best-comment mark; the question response itself stays."""
    with unit_of_work("unmark_best") as conn:
        record = repo.get_question_response(conn, response_id, question_id)
        if record is None or not best_repo.delete_best_comment(conn, record.question_response_id):
            raise NotFound(f"no best comment for ({response_id}, {question_id})")
    logger.info(
        "best_comment_unmarked rs=%s q=%s actor=%s",
        response_id,
        question_id,
        actor.actor_id if actor else None,
    )


def submit_feedback(question_response_id: str, feedback_text: Optional[str], actor: Actor) -> BestComment:
    """Attach or overwrite approver feedback on a curated comment.

    NotFound when the question response is not curated takes precedence over
    MissingReason for empty feedback.
    """
    text = (feedback_text or "").strip()
    with unit_of_work("submit_feedback") as conn:
        if best_repo.get_best_comment(conn, question_response_id) is None:
            raise NotFound(f"question response {question_response_id} is not a best comment")
        if not text:
            raise MissingReason("feedback text is required")
        best_repo.set_feedback(conn, question_response_id, text, actor.actor_id, utc_now_iso())
        updated = best_repo.get_best_comment(conn, question_response_id)
        if updated is None:
            raise PersistenceFailure(f"best comment {question_response_id} vanished during feedback")
    logger.info("best_comment_feedback qr=%s author=%s", question_response_id, actor.actor_id)
    return updated


def list_best_comments(
    survey_id: str | None = None,
    application_id: str | None = None,
    department_id: str | None = None,
    function_id: str | None = None,
) -> List[BestComment]:
    with read_only("list_best_comments") as conn:
        return best_repo.list_best_comments(
            conn,
            survey_id=survey_id,
            application_id=application_id,
            department_id=department_id,
            function_id=function_id,
        )


__all__ = ["mark_best", "unmark", "submit_feedback", "list_best_comments"]
