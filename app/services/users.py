# app/services/users.py
from __future__ import annotations

from typing import List

import structlog
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.crud.user import AccountDirectory
from app.db.session import transaction
from app.models.user import User
from app.services.media import MediaStore

log = structlog.get_logger(__name__)


class ProfileService:
    def __init__(self, db: Session, media: MediaStore):
        self.db = db
        self.media = media
        self.directory = AccountDirectory(db)

    def list_users(self) -> List[User]:
        users = self.directory.list_credentials()
        if not users:
            raise NotFoundError("No users found")
        return users

    def get_user(self, user_id: int) -> User:
        user = self.directory.find_credential_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def update_field(self, user_id: int, field: str, value: str) -> User:
        if field == "username" and not (value or "").strip():
            raise ValidationError("Username must not be blank")
        user = self.get_user(user_id)
        with transaction(self.db):
            self.directory.update_profile_field(user.id, field, value.strip() if field == "username" else value)
        log.info("profile_updated", user_id=user_id, field=field)
        return user

    def upload_image(self, user_id: int, data: bytes) -> str:
        if not data:
            raise ValidationError("File content is missing")
        user = self.get_user(user_id)
        previous = user.image_id

        image_id = self.media.upload_image(user.id, data)
        try:
            with transaction(self.db):
                self.directory.update_image_id(user.id, image_id)
        except Exception:
            self.media.delete_image(image_id)
            raise
        if previous:
            self.media.delete_image(previous)
        return image_id

    def fetch_image(self, user_id: int) -> bytes:
        user = self.get_user(user_id)
        if not user.image_id:
            raise NotFoundError("Image not found for user")
        data = self.media.fetch_image(user.image_id)
        if not data:
            raise NotFoundError("Image not found")
        return data
