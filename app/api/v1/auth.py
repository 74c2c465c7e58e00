# app/api/v1/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_auth_workflow
from app.api.permissions import is_self_or_staff, require_roles
from app.core.errors import AuthorizationError
from app.core.rbac import Decision
from app.schemas.token import (
    AuthResponse,
    ForgotPasswordIn,
    MessageOut,
    RefreshIn,
    ResetPasswordIn,
    SigninIn,
    SignoutIn,
    Token,
)
from app.schemas.user import SignupIn, UserOut
from app.services.auth import AuthenticationWorkflow

router = APIRouter()

# sync handlers: FastAPI runs them in its threadpool, which keeps the
# PBKDF2 work off the event loop


@router.post("/signup", response_model=UserOut, status_code=201)
def signup(body: SignupIn, auth: AuthenticationWorkflow = Depends(get_auth_workflow)):
    user = auth.signup(body.email, body.password, body.timezone, body.birth_date)
    return UserOut.model_validate(user)


@router.post("/signin", response_model=AuthResponse)
def signin(body: SigninIn, auth: AuthenticationWorkflow = Depends(get_auth_workflow)):
    result = auth.signin(body.email, body.password)
    return AuthResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        message="Successful authentication.",
        user=UserOut.model_validate(result.user),
    )


@router.post("/token-refresh", response_model=Token, status_code=201)
def token_refresh(body: RefreshIn, auth: AuthenticationWorkflow = Depends(get_auth_workflow)):
    pair = auth.refresh(body.refresh_token)
    return Token(access_token=pair.access_token, refresh_token=pair.refresh_token, message="Token refreshed")


@router.post("/forgot-password", response_model=MessageOut)
def forgot_password(body: ForgotPasswordIn, auth: AuthenticationWorkflow = Depends(get_auth_workflow)):
    auth.forgot_password(body.email)
    # same answer whether or not the address is registered
    return MessageOut(
        message="If an account exists for this address, an email was sent with instructions on how to reset your password."
    )


@router.post("/reset-password", response_model=MessageOut)
def reset_password(body: ResetPasswordIn, auth: AuthenticationWorkflow = Depends(get_auth_workflow)):
    auth.reset_password(body.token, body.new_password)
    return MessageOut(message="Password reset successfully.")


@router.post("/signout", response_model=MessageOut)
def signout(
    body: SignoutIn,
    caller: Decision = Depends(require_roles()),
    auth: AuthenticationWorkflow = Depends(get_auth_workflow),
):
    if not is_self_or_staff(caller, body.user_id):
        raise AuthorizationError("Insufficient permissions: you can only sign out your own sessions.")
    auth.signout(body.user_id)
    return MessageOut(message="User signed out successfully")
