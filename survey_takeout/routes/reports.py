"""Reporting routes: before/after comparison, approval statistics and function scores."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from survey_takeout.http.actor import requires
from survey_takeout.logic.actor import VIEW_REPORTS, Actor
from survey_takeout.logic.score_aggregation import approval_statistics, compute_comparison, scores_by_function
from survey_takeout.models.response_types import ApprovalStatistics, Comparison, FunctionScore

router = APIRouter()


@router.get(
    "/surveys/{survey_id}/takeout-comparison",
    response_model=Comparison,
    summary="Average scores before and after takeout",
)
def get_takeout_comparison(
    survey_id: str,
    function_id: Optional[str] = Query(default=None),
    actor: Actor = Depends(requires(VIEW_REPORTS)),
) -> Comparison:
    """Averages are null when a question has no numeric answers in scope."""
    return compute_comparison(survey_id, function_id=function_id)


@router.get(
    "/surveys/{survey_id}/approval-statistics",
    response_model=ApprovalStatistics,
    summary="Question response counts per takeout status",
)
def get_approval_statistics(
    survey_id: str,
    question_id: Optional[str] = Query(default=None),
    application_id: Optional[str] = Query(default=None),
    department_id: Optional[str] = Query(default=None),
    actor: Actor = Depends(requires(VIEW_REPORTS)),
) -> ApprovalStatistics:
    return approval_statistics(
        survey_id,
        question_id=question_id,
        application_id=application_id,
        department_id=department_id,
    )


@router.get(
    "/surveys/{survey_id}/function-scores",
    response_model=List[FunctionScore],
    summary="Per-function average score against the survey target",
)
def get_function_scores(
    survey_id: str,
    department_id: Optional[str] = Query(default=None),
    actor: Actor = Depends(requires(VIEW_REPORTS)),
) -> List[FunctionScore]:
    return scores_by_function(survey_id, department_id=department_id)


__all__ = ["router", "get_takeout_comparison", "get_approval_statistics", "get_function_scores"]
