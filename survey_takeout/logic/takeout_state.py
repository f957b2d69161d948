"""Takeout lifecycle state machine.

    Active ──propose──▶ ProposedTakeout ──approve──▶ TakenOut
      ▲                   │        │
      └──────cancel───────┘        └──reject──▶ Rejected ──propose──▶ ProposedTakeout

Each transition is applied under a per-(response, question) guard: a striped
in-process lock plus a `status_version` compare-and-set executed in the same
transaction as the ledger entry. Whoever loses the compare-and-set observes
the winner's state and gets AlreadyResolved (or InvalidTransition for a
second proposal).
"""

from __future__ import annotations

import logging
import threading
import zlib
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError

from survey_takeout.db.base import read_only, store_errors, unit_of_work
from survey_takeout.logic import approval_ledger
from survey_takeout.logic import repository_responses as repo
from survey_takeout.logic.actor import Actor
from survey_takeout.logic.errors import (
    AlreadyResolved,
    InvalidTransition,
    MissingReason,
    NotFound,
    PersistenceFailure,
    TakeoutError,
)
from survey_takeout.logic.timestamps import utc_now_iso
from survey_takeout.models.response_types import HistoryEntry, TakeoutQueueItem, TransitionResult
from survey_takeout.models.takeout_status import RESOLVED_STATUSES, ApprovalAction, TakeoutStatus

logger = logging.getLogger(__name__)


class Transition(NamedTuple):
    action: ApprovalAction
    sources: frozenset
    target: TakeoutStatus
    reason_required: bool


TRANSITIONS: Dict[str, Transition] = {
    "propose": Transition(
        ApprovalAction.PROPOSED,
        frozenset({TakeoutStatus.ACTIVE, TakeoutStatus.REJECTED}),
        TakeoutStatus.PROPOSED_TAKEOUT,
        True,
    ),
    "approve": Transition(
        ApprovalAction.APPROVED,
        frozenset({TakeoutStatus.PROPOSED_TAKEOUT}),
        TakeoutStatus.TAKEN_OUT,
        False,
    ),
    "reject": Transition(
        ApprovalAction.REJECTED,
        frozenset({TakeoutStatus.PROPOSED_TAKEOUT}),
        TakeoutStatus.REJECTED,
        True,
    ),
    "cancel": Transition(
        ApprovalAction.CANCELLED,
        frozenset({TakeoutStatus.PROPOSED_TAKEOUT}),
        TakeoutStatus.ACTIVE,
        False,
    ),
}

_LOCK_STRIPES = 256
_PAIR_LOCKS = [threading.Lock() for _ in range(_LOCK_STRIPES)]


def _pair_lock(response_id: str, question_id: str) -> threading.Lock:
    key = f"{response_id}\x1f{question_id}".encode("utf-8")
    return _PAIR_LOCKS[zlib.crc32(key) % _LOCK_STRIPES]


def normalize_reason(operation: str, reason: Optional[str]) -> Optional[str]:
    """Strip the reason and enforce it where the operation requires one."""
    transition = TRANSITIONS[operation]
    cleaned = (reason or "").strip() or None
    if transition.reason_required and cleaned is None:
        raise MissingReason(f"a reason is required to {operation} a takeout")
    return cleaned


def refusal_for(operation: str, current: TakeoutStatus) -> TakeoutError:
    """Error for attempting `operation` while the item sits in `current`."""
    if operation == "propose":
        if current is TakeoutStatus.TAKEN_OUT:
            return InvalidTransition("question response is already taken out")
        return InvalidTransition("question response already has a pending proposal")
    if current in RESOLVED_STATUSES:
        return AlreadyResolved(f"proposal was already resolved as {current.value}")
    if current is TakeoutStatus.ACTIVE:
        return InvalidTransition(f"cannot {operation}: no pending proposal")
    return AlreadyResolved("question response was modified concurrently")


def _bookkeeping(operation: str, reason: Optional[str], actor: Actor) -> Dict[str, Optional[str]]:
    now = utc_now_iso()
    if operation == "propose":
        return {
            "takeout_reason": reason,
            "proposed_by": actor.actor_id,
            "proposed_at": now,
            "reviewed_by": None,
            "reviewed_at": None,
        }
    if operation == "cancel":
        return {"takeout_reason": None, "proposed_by": None, "proposed_at": None}
    return {"reviewed_by": actor.actor_id, "reviewed_at": now}


class TakeoutStateMachine:
    """Validates and applies takeout transitions for single question responses."""

    def propose(self, response_id: str, question_id: str, reason: Optional[str], actor: Actor) -> TransitionResult:
        return self.apply("propose", response_id, question_id, reason, actor)

    def approve(self, response_id: str, question_id: str, reason: Optional[str], actor: Actor) -> TransitionResult:
        return self.apply("approve", response_id, question_id, reason, actor)

    def reject(self, response_id: str, question_id: str, reason: Optional[str], actor: Actor) -> TransitionResult:
        return self.apply("reject", response_id, question_id, reason, actor)

    def cancel_proposal(self, response_id: str, question_id: str, actor: Actor) -> TransitionResult:
        return self.apply("cancel", response_id, question_id, None, actor)

    def apply(
        self,
        operation: str,
        response_id: str,
        question_id: str,
        reason: Optional[str],
        actor: Actor,
    ) -> TransitionResult:
        if operation not in TRANSITIONS:
            raise ValueError(f"unknown takeout operation: {operation}")
        transition = TRANSITIONS[operation]
        cleaned = normalize_reason(operation, reason)

        with _pair_lock(response_id, question_id), store_errors(f"takeout_{operation}"):
            try:
                return self._apply_locked(operation, transition, response_id, question_id, cleaned, actor)
            except IntegrityError as exc:
                # Another writer appended the same ledger position first.
                with read_only("takeout_reread") as conn:
                    current = repo.get_question_response(conn, response_id, question_id)
                if current is None:
                    raise PersistenceFailure("question response vanished during transition") from exc
                raise refusal_for(operation, current.takeout_status) from exc

    def _apply_locked(
        self,
        operation: str,
        transition: Transition,
        response_id: str,
        question_id: str,
        reason: Optional[str],
        actor: Actor,
    ) -> TransitionResult:
        with unit_of_work(f"takeout_{operation}") as conn:
            record = repo.get_question_response(conn, response_id, question_id)
            if record is None:
                raise NotFound(f"question response ({response_id}, {question_id}) not found")
            before = record.takeout_status
            if before not in transition.sources:
                logger.info(
                    "takeout_refused op=%s rs=%s q=%s status=%s actor=%s",
                    operation, response_id, question_id, before.value, actor.actor_id,
                )
                raise refusal_for(operation, before)

            swapped = repo.compare_and_set_status(
                conn,
                record.question_response_id,
                record.status_version,
                before,
                transition.target,
                _bookkeeping(operation, reason, actor),
            )
            if not swapped:
                current = repo.get_question_response(conn, response_id, question_id)
                status = current.takeout_status if current is not None else before
                logger.info(
                    "takeout_lost_race op=%s rs=%s q=%s status=%s actor=%s",
                    operation, response_id, question_id, status.value, actor.actor_id,
                )
                raise refusal_for(operation, status)

            entry = approval_ledger.record(
                conn,
                record.question_response_id,
                response_id,
                question_id,
                transition.action,
                before,
                transition.target,
                actor,
                reason,
            )

        logger.info(
            "takeout_transition op=%s rs=%s q=%s %s->%s actor=%s role=%s",
            operation,
            response_id,
            question_id,
            before.value,
            transition.target.value,
            actor.actor_id,
            actor.role,
        )
        return TransitionResult(
            question_response_id=record.question_response_id,
            response_id=response_id,
            question_id=question_id,
            status=transition.target,
            entry=entry,
        )


def current_status(response_id: str, question_id: str) -> TakeoutStatus:
    with read_only("current_status") as conn:
        record = repo.get_question_response(conn, response_id, question_id)
    if record is None:
        raise NotFound(f"question response ({response_id}, {question_id}) not found")
    return record.takeout_status


def transition_history(response_id: str, question_id: str) -> List[HistoryEntry]:
    """Ledger entries for an existing (response, question) pair, oldest first."""
    with read_only("transition_history") as conn:
        if repo.get_question_response(conn, response_id, question_id) is None:
            raise NotFound(f"question response ({response_id}, {question_id}) not found")
        return approval_ledger.history_for(response_id, question_id, conn=conn)


def list_takeouts(
    status: TakeoutStatus = TakeoutStatus.PROPOSED_TAKEOUT,
    survey_id: str | None = None,
    application_id: str | None = None,
    department_id: str | None = None,
    function_id: str | None = None,
) -> List[TakeoutQueueItem]:
    """Question responses in `status`, newest proposal first."""
    with read_only("list_takeouts") as conn:
        return repo.list_takeouts(
            conn,
            status=status,
            survey_id=survey_id,
            application_id=application_id,
            department_id=department_id,
            function_id=function_id,
        )


def pending_for_approver(
    it_lead_user_id: str,
    survey_id: str | None = None,
    function_id: str | None = None,
) -> List[TakeoutQueueItem]:
    """Pending proposals on applications of functions led by `it_lead_user_id`."""
    with read_only("pending_for_approver") as conn:
        return repo.list_takeouts(
            conn,
            status=TakeoutStatus.PROPOSED_TAKEOUT,
            survey_id=survey_id,
            function_id=function_id,
            it_lead_user_id=it_lead_user_id,
        )


__all__ = [
    "TRANSITIONS",
    "Transition",
    "TakeoutStateMachine",
    "normalize_reason",
    "refusal_for",
    "current_status",
    "transition_history",
    "list_takeouts",
    "pending_for_approver",
]
