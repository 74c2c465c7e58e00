# app/schemas/token.py
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.user import UserOut


class SigninIn(BaseModel):
    email: str
    password: str


class RefreshIn(BaseModel):
    refresh_token: str = Field(alias="refreshToken")

    model_config = {"populate_by_name": True}


class ForgotPasswordIn(BaseModel):
    email: str


class ResetPasswordIn(BaseModel):
    token: str
    new_password: str = Field(alias="newPassword")

    model_config = {"populate_by_name": True}


class SignoutIn(BaseModel):
    user_id: int = Field(alias="userId")

    model_config = {"populate_by_name": True}


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    message: Optional[str] = None


class AuthResponse(Token):
    user: UserOut


class MessageOut(BaseModel):
    message: str
