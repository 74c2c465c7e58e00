# app/crud/refresh_token.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite

from app.crud.base import CRUDBase, storage_call
from app.models.refresh_token import RefreshToken

# dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class TokenStore(CRUDBase[RefreshToken]):
    """Refresh-token rows, at most one per user."""

    model = RefreshToken

    @storage_call
    def find_refresh_token_by_user_id(self, user_id: int) -> Optional[RefreshToken]:
        return self.db.scalar(select(RefreshToken).where(RefreshToken.user_id == user_id))

    @storage_call
    def find_refresh_token_by_value(self, token: str) -> Optional[RefreshToken]:
        return self.db.scalar(select(RefreshToken).where(RefreshToken.token == token))

    def create_refresh_token(self, user_id: int, token: str, created_at: datetime, expires_at: datetime) -> RefreshToken:
        return self.add(
            RefreshToken(user_id=user_id, token=token, created_at=created_at, expires_at=expires_at)
        )

    @storage_call
    def replace_refresh_token(self, user_id: int, token: str, created_at: datetime, expires_at: datetime) -> bool:
        # single UPDATE: the user is never left without a session row mid-rotation
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .values(token=token, created_at=created_at, expires_at=expires_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    @storage_call
    def delete_refresh_tokens_for_user(self, user_id: int) -> int:
        result = self.db.execute(
            delete(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    @storage_call
    def upsert_refresh_token(
        self, user_id: int, token: str, created_at: datetime, expires_at: datetime
    ) -> Optional[RefreshToken]:
        """Insert or overwrite the user's session row in one statement.

        Two signins racing for the same user both land here; the unique index on
        ``user_id`` turns the loser's insert into an update (last writer wins).
        """
        insert = _UPSERT_INSERTS.get(self.db.get_bind().dialect.name)
        if insert is None:
            if not self.replace_refresh_token(user_id, token, created_at, expires_at):
                return self.create_refresh_token(user_id, token, created_at, expires_at)
            return self.find_refresh_token_by_user_id(user_id)

        values = {"user_id": user_id, "token": token, "created_at": created_at, "expires_at": expires_at}
        stmt = insert(RefreshToken).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RefreshToken.user_id],
            set_={"token": stmt.excluded.token, "created_at": stmt.excluded.created_at, "expires_at": stmt.excluded.expires_at},
        ).returning(RefreshToken)
        return self.db.scalars(stmt, execution_options={"populate_existing": True}).one()
