# app/services/auth.py
from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import structlog
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.core.rbac import Role
from app.core.security_password import HashingService, SaltedHash
from app.core.tokens import TokenClaim, TokenService, now_in
from app.crud.refresh_token import TokenStore
from app.crud.user import AccountDirectory
from app.db.session import transaction
from app.models.user import User
from app.services.email import MailSender, render_reset_email
from app.services.media import MediaStore

log = structlog.get_logger(__name__)

RESET_TOKEN_ALPHABET = string.ascii_letters + string.digits
RESET_TOKEN_LENGTH = 32
USERNAME_ATTEMPTS = 25


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def generate_random_string(length: int = RESET_TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(RESET_TOKEN_ALPHABET) for _ in range(length))


def candidate_username() -> str:
    millis = int(time.time() * 1000)
    random_part = 100_000_000_000 + secrets.randbelow(900_000_000_000)
    return f"user_{millis}_{random_part}"


def is_live(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return (now or _utcnow()) < expires_at


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class SigninResult:
    tokens: TokenPair
    user: User


class AuthenticationWorkflow:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        hashing: HashingService,
        tokens: TokenService,
        mailer: MailSender,
        media: MediaStore,
    ):
        self.db = db
        self.settings = settings
        self.hashing = hashing
        self.tokens = tokens
        self.mailer = mailer
        self.media = media
        self.directory = AccountDirectory(db)
        self.token_store = TokenStore(db)

    # ------------------------------------------------------------------ signup

    def _unique_username(self) -> str:
        for _ in range(USERNAME_ATTEMPTS):
            username = candidate_username()
            if self.directory.find_credential_by_username(username) is None:
                return username
        raise StorageError("Could not allocate a unique username")

    def signup(
        self,
        email: str,
        password: str,
        timezone_id: Optional[str] = None,
        birth_date: Optional[date] = None,
    ) -> User:
        email = normalize_email(email)
        if not email or not password or not password.strip():
            raise ValidationError("Email and password must not be blank")
        timezone_id = (timezone_id or self.settings.DEFAULT_TIMEZONE).strip()
        created_at = now_in(timezone_id)

        if self.directory.find_credential_by_email(email) is not None:
            raise ConflictError("Email already exists")

        salted = self.hashing.generate_salted_hash(password)
        with transaction(self.db):
            user = self.directory.insert_credential(
                User(
                    email=email,
                    username=self._unique_username(),
                    password_hash=salted.hash,
                    password_salt=salted.salt,
                    role=Role.parse(self.settings.DEFAULT_ROLE).value,
                    created_at=created_at,
                    timezone_id=timezone_id,
                    birth_date=birth_date,
                )
            )
        log.info("user_signed_up", user_id=user.id, username=user.username)
        return user

    # ------------------------------------------------------------------ tokens

    def _issue(self, user: User) -> TokenPair:
        claims = [TokenClaim("userId", str(user.id)), TokenClaim("role", user.role)]
        return TokenPair(
            access_token=self.tokens.generate_access_token(claims, user.timezone_id),
            refresh_token=self.tokens.generate_refresh_token(user.timezone_id),
        )

    def _session_window(self) -> tuple[datetime, datetime]:
        # taken before minting so the stored expiry never outlives the JWT exp
        created = _utcnow().replace(microsecond=0)
        return created, created + self.tokens.config.refresh_ttl

    def signin(self, email: str, password: str) -> SigninResult:
        user = self.directory.find_credential_by_email(normalize_email(email))
        if user is None:
            raise NotFoundError(
                "There is no user related to this email address. Please try again or signup."
            )
        if not self.hashing.verify(password or "", SaltedHash(user.password_hash or "", user.password_salt or "")):
            log.info("signin_rejected", user_id=user.id)
            raise AuthenticationError("Incorrect email or password.")

        created, expires = self._session_window()
        pair = self._issue(user)
        with transaction(self.db):
            self.token_store.upsert_refresh_token(user.id, pair.refresh_token, created, expires)
        log.info("user_signed_in", user_id=user.id)
        return SigninResult(tokens=pair, user=user)

    def refresh(self, refresh_token: str) -> TokenPair:
        if not refresh_token:
            raise AuthenticationError("Invalid refresh token. Sign in.")
        stored = self.token_store.find_refresh_token_by_value(refresh_token)
        if stored is None or not is_live(stored.expires_at):
            raise AuthenticationError("Invalid refresh token. Sign in.")

        user = self.directory.find_credential_by_id(stored.user_id)
        if user is None:
            raise AuthenticationError("User not found.")

        created, expires = self._session_window()
        pair = self._issue(user)
        with transaction(self.db):
            self.token_store.upsert_refresh_token(user.id, pair.refresh_token, created, expires)
        log.info("refresh_token_rotated", user_id=user.id)
        return pair

    # ---------------------------------------------------------- password reset

    def forgot_password(self, email: str) -> bool:
        """Returns False when the address is unknown and enumeration is hidden."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email must not be blank")
        user = self.directory.find_credential_by_email(email)
        if user is None:
            if self.settings.FORGOT_PASSWORD_REVEAL_UNKNOWN:
                raise ConflictError("User does not exist.")
            log.info("password_reset_unknown_email")
            return False

        token = generate_random_string(RESET_TOKEN_LENGTH)
        expires = _utcnow() + timedelta(minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES)
        with transaction(self.db):
            self.directory.update_password_reset_token(user.id, token, expires)

        link = f"{self.settings.PASSWORD_RESET_URL}?{urlencode({'token': token})}"
        body = render_reset_email(link, self.settings.PASSWORD_RESET_EXPIRE_MINUTES)
        # TODO: clear the persisted reset token when delivery fails so a dead link cannot linger
        self.mailer.send_email(user.email, "Password Reset", body)
        log.info("password_reset_requested", user_id=user.id)
        return True

    def reset_password(self, token: str, new_password: str) -> None:
        if not new_password or not new_password.strip():
            raise ValidationError("New password must not be blank")
        user = self.directory.find_credential_by_reset_token(token) if token else None
        if user is None or not is_live(user.password_reset_token_expiry):
            raise ValidationError("Invalid or expired token.")

        salted = self.hashing.generate_salted_hash(new_password)
        with transaction(self.db):
            if not self.directory.update_password(user.id, salted):
                raise StorageError("Failed to reset the password.")
            self.token_store.delete_refresh_tokens_for_user(user.id)
        log.info("password_reset_completed", user_id=user.id)

    # ----------------------------------------------------------------- signout

    def signout(self, user_id: int) -> None:
        if self.directory.find_credential_by_id(user_id) is None:
            raise NotFoundError("User not found")
        with transaction(self.db):
            removed = self.token_store.delete_refresh_tokens_for_user(user_id)
        log.info("user_signed_out", user_id=user_id, sessions_removed=removed)

    # -------------------------------------------------------- account deletion

    def delete_account(self, user_id: int) -> None:
        user = self.directory.find_credential_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        image_id = user.image_id

        try:
            with transaction(self.db):
                self.token_store.delete_refresh_tokens_for_user(user_id)
                if not self.directory.delete_credential(user_id):
                    raise StorageError("Failed to delete user")
                # last step: a failure here still rolls back the rows above
                if image_id:
                    self.media.delete_image(image_id)
        except OSError as exc:
            log.error("account_deletion_failed", user_id=user_id, error_type=type(exc).__name__)
            raise StorageError("Failed to delete user and tokens") from exc
        log.info("account_deleted", user_id=user_id)
