# app/core/rbac.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from app.core.errors import AuthenticationError, AuthorizationError


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MODERATOR = "moderator"
    VIP = "vip"
    USER = "user"
    GUEST = "guest"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value}") from None

    @property
    def rank(self) -> int:
        return _RANK[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank


# lowest privilege first
_HIERARCHY = [Role.GUEST, Role.USER, Role.VIP, Role.MODERATOR, Role.ADMIN, Role.OWNER]
_RANK = {role: idx for idx, role in enumerate(_HIERARCHY)}


def role_set(roles: Iterable[Any]) -> FrozenSet[Role]:
    return frozenset(Role.parse(r) for r in roles)


@dataclass(frozen=True)
class Decision:
    allow: bool
    role: Role
    user_id: Optional[int]
    claims: Dict[str, Any] = field(default_factory=dict)


class AuthorizationGate:
    """Verifies a bearer token and checks its role against an allowlist.

    No storage access happens here; the only inputs are the token, the
    required roles and the signing configuration held by ``token_service``.
    An empty allowlist means any verified token is enough.
    """

    def __init__(self, token_service):
        self.token_service = token_service

    def check(self, token: Optional[str], required_roles: Iterable[Any] = ()) -> Decision:
        if not token:
            raise AuthenticationError("Authentication failed. No valid JWT token found.")
        claims = self.token_service.verify_access_token(token)

        try:
            role = Role.parse(claims["role"])
        except (KeyError, ValueError):
            raise AuthenticationError("Token is invalid or expired") from None

        try:
            user_id = int(claims.get("userId") or claims.get("sub"))
        except (TypeError, ValueError):
            raise AuthenticationError("Token is invalid or expired") from None

        allowed = role_set(required_roles)
        if allowed and role not in allowed:
            raise AuthorizationError(
                "Insufficient permissions: you do not have access to this resource.",
                details={"role": role.value, "required": sorted(r.value for r in allowed)},
            )
        return Decision(allow=True, role=role, user_id=user_id, claims=claims)
