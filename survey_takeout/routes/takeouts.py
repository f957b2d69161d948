"""Takeout workflow routes: single transitions, history, bulk and queues."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from survey_takeout.http.actor import current_actor, requires
from survey_takeout.logic.actor import (
    CANCEL_TAKEOUT,
    DECIDE_TAKEOUT,
    PROPOSE_TAKEOUT,
    VIEW_REPORTS,
    Actor,
    require_capability,
)
from survey_takeout.logic.bulk_operations import apply_bulk
from survey_takeout.logic.takeout_state import (
    TakeoutStateMachine,
    list_takeouts,
    pending_for_approver,
    transition_history,
)
from survey_takeout.models.response_types import (
    BulkRequest,
    BulkResult,
    HistoryEntry,
    ReasonBody,
    TakeoutQueueItem,
    TransitionResult,
)
from survey_takeout.models.takeout_status import TakeoutStatus

router = APIRouter()
logger = logging.getLogger(__name__)

_machine = TakeoutStateMachine()

# Capability needed per bulk operation
BULK_CAPABILITIES = {
    "propose": PROPOSE_TAKEOUT,
    "approve": DECIDE_TAKEOUT,
    "reject": DECIDE_TAKEOUT,
    "cancel": CANCEL_TAKEOUT,
}


def _reason(body: Optional[ReasonBody]) -> Optional[str]:
    return body.reason if body is not None else None


@router.post(
    "/question-responses/{response_id}/{question_id}/propose",
    response_model=TransitionResult,
    summary="Propose a takeout",
)
def post_propose(
    response_id: str,
    question_id: str,
    body: Optional[ReasonBody] = None,
    actor: Actor = Depends(requires(PROPOSE_TAKEOUT)),
) -> TransitionResult:
    return _machine.propose(response_id, question_id, _reason(body), actor)


@router.post(
    "/question-responses/{response_id}/{question_id}/approve",
    response_model=TransitionResult,
    summary="Approve a pending takeout",
)
def post_approve(
    response_id: str,
    question_id: str,
    body: Optional[ReasonBody] = None,
    actor: Actor = Depends(requires(DECIDE_TAKEOUT)),
) -> TransitionResult:
    return _machine.approve(response_id, question_id, _reason(body), actor)


@router.post(
    "/question-responses/{response_id}/{question_id}/reject",
    response_model=TransitionResult,
    summary="Reject a pending takeout",
)
def post_reject(
    response_id: str,
    question_id: str,
    body: Optional[ReasonBody] = None,
    actor: Actor = Depends(requires(DECIDE_TAKEOUT)),
) -> TransitionResult:
    return _machine.reject(response_id, question_id, _reason(body), actor)


@router.post(
    "/question-responses/{response_id}/{question_id}/cancel",
    response_model=TransitionResult,
    summary="Withdraw a pending takeout",
)
def post_cancel(
    response_id: str,
    question_id: str,
    actor: Actor = Depends(requires(CANCEL_TAKEOUT)),
) -> TransitionResult:
    return _machine.cancel_proposal(response_id, question_id, actor)


@router.get(
    "/question-responses/{response_id}/{question_id}/history",
    response_model=List[HistoryEntry],
    summary="Takeout history, oldest first",
)
def get_history(
    response_id: str,
    question_id: str,
    actor: Actor = Depends(requires(VIEW_REPORTS)),
) -> List[HistoryEntry]:
    return transition_history(response_id, question_id)


@router.post(
    "/takeouts/bulk",
    response_model=BulkResult,
    summary="Apply one takeout operation to many items",
)
def post_bulk(payload: BulkRequest, actor: Actor = Depends(current_actor)) -> BulkResult:
    """Per-item outcomes; a failed item never aborts the rest of the batch."""
    require_capability(actor, BULK_CAPABILITIES[payload.operation])
    return apply_bulk(payload.operation, payload.items, payload.reason, actor, machine=_machine)


@router.get(
    "/takeouts/pending",
    response_model=List[TakeoutQueueItem],
    summary="Approver queue",
)
def get_pending(
    survey_id: Optional[str] = Query(default=None),
    function_id: Optional[str] = Query(default=None),
    actor: Actor = Depends(requires(DECIDE_TAKEOUT)),
) -> List[TakeoutQueueItem]:
    """Pending proposals on applications of functions led by the caller."""
    return pending_for_approver(actor.actor_id, survey_id=survey_id, function_id=function_id)


@router.get(
    "/takeouts",
    response_model=List[TakeoutQueueItem],
    summary="List question responses by takeout status",
)
def get_takeouts(
    status: TakeoutStatus = Query(default=TakeoutStatus.PROPOSED_TAKEOUT),
    survey_id: Optional[str] = Query(default=None),
    application_id: Optional[str] = Query(default=None),
    department_id: Optional[str] = Query(default=None),
    function_id: Optional[str] = Query(default=None),
    actor: Actor = Depends(requires(VIEW_REPORTS)),
) -> List[TakeoutQueueItem]:
    return list_takeouts(
        status=status,
        survey_id=survey_id,
        application_id=application_id,
        department_id=department_id,
        function_id=function_id,
    )


__all__ = [
    "router",
    "post_propose",
    "post_approve",
    "post_reject",
    "post_cancel",
    "get_history",
    "post_bulk",
    "get_pending",
    "get_takeouts",
]
