# app/api/deps.py
from typing import Generator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.rbac import AuthorizationGate
from app.core.security_password import HashingService
from app.core.tokens import TokenService
from app.services.auth import AuthenticationWorkflow
from app.services.email import MailSender
from app.services.media import MediaStore
from app.services.users import ProfileService


# ----------------------------------------------------------------------
# Process-wide collaborators, built once in create_app() and kept on app.state
# ----------------------------------------------------------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_hashing_service(request: Request) -> HashingService:
    return request.app.state.hashing_service


def get_mailer(request: Request) -> MailSender:
    return request.app.state.mailer


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store


def get_gate(request: Request) -> AuthorizationGate:
    return request.app.state.gate


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


# ----------------------------------------------------------------------
# Reads the Bearer from the Authorization header (no OAuth2PasswordBearer);
# absence is left to the gate so every rejection has the same shape
# ----------------------------------------------------------------------
def get_bearer_token(authorization: Optional[str] = Header(None, alias="Authorization")) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def get_auth_workflow(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    hashing: HashingService = Depends(get_hashing_service),
    tokens: TokenService = Depends(get_token_service),
    mailer: MailSender = Depends(get_mailer),
    media: MediaStore = Depends(get_media_store),
) -> AuthenticationWorkflow:
    return AuthenticationWorkflow(db, settings, hashing, tokens, mailer, media)


def get_profile_service(
    db: Session = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
) -> ProfileService:
    return ProfileService(db, media)
