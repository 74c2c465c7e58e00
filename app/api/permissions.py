# app/api/permissions.py
from typing import Callable, Optional

from fastapi import Depends

from app.api.deps import get_bearer_token, get_gate
from app.core.rbac import AuthorizationGate, Decision, Role, role_set


def require_roles(*roles: Role) -> Callable[..., Decision]:
    """
    Use: Depends(require_roles(Role.OWNER, Role.ADMIN))
    With no roles the route only needs a valid access token.
    """
    allowed = role_set(roles)

    def _checker(
        token: Optional[str] = Depends(get_bearer_token),
        gate: AuthorizationGate = Depends(get_gate),
    ) -> Decision:
        return gate.check(token, allowed)

    return _checker


def is_self_or_staff(decision: Decision, user_id: int) -> bool:
    return decision.user_id == user_id or decision.role.at_least(Role.ADMIN)
