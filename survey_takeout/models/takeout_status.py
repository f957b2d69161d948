"""Takeout lifecycle states and ledger actions."""

from __future__ import annotations

from enum import Enum


class TakeoutStatus(str, Enum):
    ACTIVE = "Active"
    PROPOSED_TAKEOUT = "ProposedTakeout"
    TAKEN_OUT = "TakenOut"
    REJECTED = "Rejected"


class ApprovalAction(str, Enum):
    PROPOSED = "Proposed"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


# Statuses reached by an approver decision on a proposal
RESOLVED_STATUSES = frozenset({TakeoutStatus.TAKEN_OUT, TakeoutStatus.REJECTED})


__all__ = ["TakeoutStatus", "ApprovalAction", "RESOLVED_STATUSES"]
