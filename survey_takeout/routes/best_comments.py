"""Best-comment curation routes."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from survey_takeout.http.actor import requires
from survey_takeout.logic import best_comments
from survey_takeout.logic.actor import COMMENT_FEEDBACK, CURATE_COMMENT, VIEW_REPORTS, Actor
from survey_takeout.models.response_types import BestComment, FeedbackBody

router = APIRouter()


@router.post(
    "/question-responses/{response_id}/{question_id}/best-comment",
    response_model=BestComment,
    summary="Mark a comment as best",
)
def post_best_comment(
    response_id: str,
    question_id: str,
    actor: Actor = Depends(requires(CURATE_COMMENT)),
) -> BestComment:
    return best_comments.mark_best(response_id, question_id, actor)


@router.delete(
    "/question-responses/{response_id}/{question_id}/best-comment",
    status_code=204,
    summary="Unmark a best comment",
)
def delete_best_comment(
    response_id: str,
    question_id: str,
    actor: Actor = Depends(requires(CURATE_COMMENT)),
) -> Response:
    best_comments.unmark(response_id, question_id, actor)
    return Response(status_code=204)


@router.put(
    "/best-comments/{question_response_id}/feedback",
    response_model=BestComment,
    summary="Attach approver feedback to a best comment",
)
def put_feedback(
    question_response_id: str,
    body: FeedbackBody,
    actor: Actor = Depends(requires(COMMENT_FEEDBACK)),
) -> BestComment:
    return best_comments.submit_feedback(question_response_id, body.feedback_text, actor)


@router.get(
    "/best-comments",
    response_model=List[BestComment],
    summary="List best comments",
)
def get_best_comments(
    survey_id: Optional[str] = Query(default=None),
    application_id: Optional[str] = Query(default=None),
    department_id: Optional[str] = Query(default=None),
    function_id: Optional[str] = Query(default=None),
    actor: Actor = Depends(requires(VIEW_REPORTS)),
) -> List[BestComment]:
    return best_comments.list_best_comments(
        survey_id=survey_id,
        application_id=application_id,
        department_id=department_id,
        function_id=function_id,
    )


__all__ = ["router", "post_best_comment", "delete_best_comment", "put_feedback", "get_best_comments"]
