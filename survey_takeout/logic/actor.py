"""Actor identity and role capability check.

Identity and role come from the upstream authentication collaborator and are
passed explicitly into every core operation. This module only answers "may
this role do that"; it never issues or validates credentials.
"""

from __future__ import annotations

from typing import Dict, FrozenSet

from pydantic import BaseModel, ConfigDict, field_validator


PROPOSE_TAKEOUT = "propose_takeout"
CANCEL_TAKEOUT = "cancel_takeout"
DECIDE_TAKEOUT = "decide_takeout"
CURATE_COMMENT = "curate_comment"
COMMENT_FEEDBACK = "comment_feedback"
VIEW_REPORTS = "view_reports"

ROLE_CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "admin": frozenset({PROPOSE_TAKEOUT, CANCEL_TAKEOUT, CURATE_COMMENT, VIEW_REPORTS}),
    "it_lead": frozenset({DECIDE_TAKEOUT, COMMENT_FEEDBACK, VIEW_REPORTS}),
    "superadmin": frozenset(
        {PROPOSE_TAKEOUT, CANCEL_TAKEOUT, DECIDE_TAKEOUT, CURATE_COMMENT, COMMENT_FEEDBACK, VIEW_REPORTS}
    ),
}


class PermissionDenied(Exception):
    def __init__(self, role: str, capability: str) -> None:
        super().__init__(f"role '{role}' lacks capability '{capability}'")
        self.role = role
        self.capability = capability


class Actor(BaseModel):
    model_config = ConfigDict(frozen=True)

    actor_id: str
    role: str

    @field_validator("actor_id", "role")
    @classmethod
    def must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("actor_id and role must be non-empty")
        return v.strip()


def has_capability(actor: Actor, capability: str) -> bool:
    return capability in ROLE_CAPABILITIES.get(actor.role.lower(), frozenset())


def require_capability(actor: Actor, capability: str) -> None:
    if not has_capability(actor, capability):
        raise PermissionDenied(actor.role, capability)


__all__ = [
    "Actor",
    "PermissionDenied",
    "ROLE_CAPABILITIES",
    "has_capability",
    "require_capability",
    "PROPOSE_TAKEOUT",
    "CANCEL_TAKEOUT",
    "DECIDE_TAKEOUT",
    "CURATE_COMMENT",
    "COMMENT_FEEDBACK",
    "VIEW_REPORTS",
]
