# app/crud/user.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update

from app.core.security_password import SaltedHash
from app.crud.base import CRUDBase, storage_call
from app.models.user import User

PROFILE_FIELDS = {"bio", "occupation", "username"}


class AccountDirectory(CRUDBase[User]):
    model = User

    @storage_call
    def find_credential_by_email(self, email: str) -> Optional[User]:
        return self.db.scalar(select(User).where(User.email == email))

    @storage_call
    def find_credential_by_username(self, username: str) -> Optional[User]:
        return self.db.scalar(select(User).where(User.username == username))

    def find_credential_by_id(self, user_id: int) -> Optional[User]:
        return self.get(user_id)

    @storage_call
    def find_credential_by_reset_token(self, token: str) -> Optional[User]:
        return self.db.scalar(select(User).where(User.password_reset_token == token))

    def insert_credential(self, user: User) -> User:
        return self.add(user)

    @storage_call
    def list_credentials(self) -> List[User]:
        return list(self.db.scalars(select(User).order_by(User.id)).all())

    @storage_call
    def update_password_reset_token(self, user_id: int, token: Optional[str], expires_at: Optional[datetime]) -> bool:
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(password_reset_token=token, password_reset_token_expiry=expires_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    @storage_call
    def update_password(self, user_id: int, salted: SaltedHash) -> bool:
        # a new password always burns the outstanding reset token
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                password_hash=salted.hash,
                password_salt=salted.salt,
                password_reset_token=None,
                password_reset_token_expiry=None,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    @storage_call
    def update_profile_field(self, user_id: int, field: str, value: Optional[str]) -> bool:
        if field not in PROFILE_FIELDS:
            raise ValueError(f"Unsupported profile field: {field}")
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values({field: value})
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    @storage_call
    def update_image_id(self, user_id: int, image_id: Optional[str]) -> bool:
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(image_id=image_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    @storage_call
    def delete_credential(self, user_id: int) -> bool:
        result = self.db.execute(
            delete(User).where(User.id == user_id).execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0
