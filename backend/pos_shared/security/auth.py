"""
Request actor resolution.

Authentication happens upstream: the gateway verifies the staff token and
forwards the resolved identity as headers. This module turns those headers
into an Actor and offers the role checks the routers need.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Header, HTTPException, status

from pos_shared.config.constants import Roles
from pos_shared.config.settings import settings
from pos_shared.config.logging import get_logger
from pos_shared.utils.exceptions import InsufficientRoleError, OutletAccessError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Actor:
    """Staff member performing an operation."""

    actor_id: int
    role: str
    outlet_id: int

    @property
    def can_override_session(self) -> bool:
        """Whether this role may mutate a session opened by someone else."""
        return self.role in settings.override_roles

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.actor_id, "role": self.role}


def current_actor(
    x_actor_id: int | None = Header(default=None, alias="X-Actor-Id"),
    x_actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
    x_outlet_id: int | None = Header(default=None, alias="X-Outlet-Id"),
) -> Actor:
    """
    FastAPI dependency building the Actor from identity headers.

    Usage:
        @router.post("/orders")
        def create_order(actor: Actor = Depends(current_actor)):
            ...
    """
    if x_actor_id is None or x_actor_role is None or x_outlet_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor identity headers",
        )

    role = x_actor_role.strip().upper()
    if role not in Roles.ALL:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role '{x_actor_role}'",
        )
    if x_actor_id <= 0 or x_outlet_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor and outlet ids must be positive",
        )

    return Actor(actor_id=x_actor_id, role=role, outlet_id=x_outlet_id)


def require_roles(actor: Actor, allowed: list[str] | frozenset[str]) -> None:
    """Raise InsufficientRoleError unless the actor holds one of the allowed roles."""
    if actor.role not in allowed:
        raise InsufficientRoleError(allowed, actor_id=actor.actor_id, role=actor.role)


def require_outlet(actor: Actor, outlet_id: int) -> None:
    """Raise OutletAccessError when an entity belongs to another outlet."""
    if actor.outlet_id != outlet_id:
        raise OutletAccessError(outlet_id, actor_id=actor.actor_id, actor_outlet_id=actor.outlet_id)
