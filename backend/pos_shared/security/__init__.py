"""
Security module: request actor and role checks.
"""

from pos_shared.security.auth import Actor, current_actor, require_roles, require_outlet

__all__ = ["Actor", "current_actor", "require_roles", "require_outlet"]
