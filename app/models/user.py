# app/models/user.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_salt: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="owner")

    password_reset_token: Mapped[Optional[str]] = mapped_column(String(512), index=True, nullable=True)
    password_reset_token_expiry: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    timezone_id: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    occupation: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    image_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    refresh_token = relationship(
        "RefreshToken",
        back_populates="user",
        uselist=False,
        passive_deletes=True,
    )
