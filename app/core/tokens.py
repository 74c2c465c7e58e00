# app/core/tokens.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jose import JWTError, jwt

from app.core.config import Settings
from app.core.errors import AuthenticationError, InvalidArgumentError

ALGO = "HS256"
ACCESS = "access"
REFRESH = "refresh"
# registered claims are owned by the service, callers cannot override them
_RESERVED = {"iss", "aud", "iat", "exp", "type", "jti"}


@dataclass(frozen=True)
class TokenClaim:
    name: str
    value: str


@dataclass(frozen=True)
class TokenConfig:
    issuer: str
    audience: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            secret=settings.JWT_SECRET,
        )


def resolve_zone(timezone: str) -> ZoneInfo:
    if not timezone or not timezone.strip():
        raise InvalidArgumentError("Timezone must not be blank")
    try:
        return ZoneInfo(timezone.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidArgumentError(f"Unknown timezone '{timezone}'") from exc


def now_in(timezone: str) -> datetime:
    return datetime.now(resolve_zone(timezone))


class TokenService:
    def __init__(self, config: TokenConfig):
        self.config = config

    def _payload(self, token_type: str, ttl: timedelta, timezone: str) -> Dict[str, Any]:
        issued = now_in(timezone)
        return {
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "iat": int(issued.timestamp()),
            "exp": int((issued + ttl).timestamp()),
            "type": token_type,
            "jti": uuid.uuid4().hex,
        }

    def generate_access_token(self, claims: Iterable[TokenClaim], timezone: str) -> str:
        """Short-lived token carrying the caller's claims (userId, role)."""
        payload = self._payload(ACCESS, self.config.access_ttl, timezone)
        for claim in claims:
            if claim.name in _RESERVED:
                raise InvalidArgumentError(f"Claim '{claim.name}' is reserved")
            payload[claim.name] = claim.value
        if "userId" in payload:
            payload.setdefault("sub", payload["userId"])
        return jwt.encode(payload, self.config.secret, algorithm=ALGO)

    def generate_refresh_token(self, timezone: str) -> str:
        """Opaque session handle; the stored row decides whether it is still live."""
        payload = self._payload(REFRESH, self.config.refresh_ttl, timezone)
        return jwt.encode(payload, self.config.secret, algorithm=ALGO)

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self.config.secret,
                algorithms=[ALGO],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )
        except JWTError as exc:
            raise AuthenticationError("Token is invalid or expired") from exc
        if not isinstance(payload, dict):
            raise AuthenticationError("Token is invalid or expired")
        return payload

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        payload = self.decode(token)
        if payload.get("type") != ACCESS:
            raise AuthenticationError("Token is invalid or expired")
        return payload
