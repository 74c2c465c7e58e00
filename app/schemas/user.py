# app/schemas/user.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# "5 Jan 1990" is what the mobile client sends; ISO dates are accepted too
_BIRTH_DATE_FORMATS = ("%d %b %Y", "%Y-%m-%d")


class SignupIn(BaseModel):
    email: str
    password: str
    timezone: Optional[str] = None
    birth_date: Optional[date] = Field(default=None, alias="birthDate")

    model_config = {"populate_by_name": True}

    @field_validator("birth_date", mode="before")
    @classmethod
    def _parse_birth_date(cls, value):
        if value is None or value == "":
            return None
        if isinstance(value, date):
            return value
        for fmt in _BIRTH_DATE_FORMATS:
            try:
                return datetime.strptime(str(value).strip(), fmt).date()
            except ValueError:
                continue
        raise ValueError("birthDate must look like '5 Jan 1990' or '1990-01-05'")


class UserOut(BaseModel):
    """Public view of a credential: never carries the hash, salt or reset token."""

    id: int
    email: str
    username: str
    role: str
    created_at: datetime
    timezone_id: str
    birth_date: Optional[date] = None
    bio: Optional[str] = None
    occupation: Optional[str] = None
    image_id: Optional[str] = None

    model_config = {"from_attributes": True}


class UpdateBioIn(BaseModel):
    bio: str


class UpdateOccupationIn(BaseModel):
    occupation: str


class UpdateUsernameIn(BaseModel):
    username: str


class ProfileFieldUpdateOut(BaseModel):
    message: str
    user: UserOut


class UploadImageOut(BaseModel):
    message: str
    image_id: str
