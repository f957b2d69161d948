"""Actor dependencies for route handlers.

The upstream authentication collaborator forwards the caller's identity in
`X-Actor-Id` and `X-Actor-Role`. These dependencies only read the headers
and check capabilities; they never validate credentials.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Header

from survey_takeout.http.problem import ActorMissing
from survey_takeout.logic.actor import Actor, require_capability


def current_actor(
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    actor_role: Optional[str] = Header(default=None, alias="X-Actor-Role"),
) -> Actor:
    if not (actor_id or "").strip() or not (actor_role or "").strip():
        raise ActorMissing("X-Actor-Id and X-Actor-Role headers are required")
    return Actor(actor_id=actor_id, role=actor_role.strip().lower())


def requires(capability: str) -> Callable[..., Actor]:
    """Dependency factory returning the actor once `capability` is confirmed."""

    def dependency(actor: Actor = Depends(current_actor)) -> Actor:
        require_capability(actor, capability)
        return actor

    return dependency


__all__ = ["current_actor", "requires"]
