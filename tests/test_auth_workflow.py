import re

import pytest
from freezegun import freeze_time
from sqlalchemy import func, select

from app.core.errors import (
    AuthenticationError,
    ConflictError,
    InvalidArgumentError,
    MailDeliveryError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.crud.user import AccountDirectory
from app.models.refresh_token import RefreshToken
from app.models.user import User
from app.services.auth import AuthenticationWorkflow
from app.services.media import FileMediaStore


def _refresh_rows(db, user_id):
    return db.scalar(select(func.count()).select_from(RefreshToken).where(RefreshToken.user_id == user_id))


# --------------------------------------------------------------------------- signup

def test_signup_creates_owner_with_generated_username(workflow):
    user = workflow.signup("  New@Example.com ", "pw")

    assert user.id is not None
    assert user.email == "new@example.com"
    assert re.match(r"^user_\d+_\d+$", user.username)
    assert user.role == "owner"
    assert user.timezone_id == "UTC"
    assert user.password_hash and user.password_salt


def test_signup_rejects_duplicate_email(workflow):
    workflow.signup("dup@example.com", "pw")
    with pytest.raises(ConflictError):
        workflow.signup("DUP@example.com", "other")


@pytest.mark.parametrize("email,password", [("", "pw"), ("a@b.com", ""), ("a@b.com", "   ")])
def test_signup_rejects_blank_input(workflow, email, password):
    with pytest.raises(ValidationError):
        workflow.signup(email, password)


def test_signup_rejects_unknown_timezone(workflow, db):
    with pytest.raises(InvalidArgumentError):
        workflow.signup("tz@example.com", "pw", timezone_id="Nowhere/Land")
    assert AccountDirectory(db).find_credential_by_email("tz@example.com") is None


# --------------------------------------------------------------------------- signin

def test_signin_keeps_a_single_session_row(workflow, db):
    user = workflow.signup("one@example.com", "pw")

    first = workflow.signin("one@example.com", "pw")
    second = workflow.signin("one@example.com", "pw")

    assert first.tokens.refresh_token != second.tokens.refresh_token
    assert _refresh_rows(db, user.id) == 1
    stored = workflow.token_store.find_refresh_token_by_user_id(user.id)
    assert stored.token == second.tokens.refresh_token


def test_signin_access_token_carries_identity(workflow, token_service):
    user = workflow.signup("claims@example.com", "pw")
    result = workflow.signin("claims@example.com", "pw")
    claims = token_service.verify_access_token(result.tokens.access_token)
    assert claims["userId"] == str(user.id)
    assert claims["role"] == "owner"


def test_signin_unknown_email(workflow):
    with pytest.raises(NotFoundError):
        workflow.signin("ghost@example.com", "pw")


def test_signin_wrong_password_leaves_sessions_alone(workflow, db):
    user = workflow.signup("wrong@example.com", "pw")
    with pytest.raises(AuthenticationError):
        workflow.signin("wrong@example.com", "nope")
    assert _refresh_rows(db, user.id) == 0


# --------------------------------------------------------------------------- refresh

def test_refresh_rotates_and_invalidates_previous_token(workflow, db):
    user = workflow.signup("rot@example.com", "pw")
    issued = workflow.signin("rot@example.com", "pw").tokens

    rotated = workflow.refresh(issued.refresh_token)

    assert rotated.refresh_token != issued.refresh_token
    assert _refresh_rows(db, user.id) == 1
    with pytest.raises(AuthenticationError):
        workflow.refresh(issued.refresh_token)
    assert workflow.refresh(rotated.refresh_token).refresh_token


def test_refresh_rejects_unknown_token(workflow):
    with pytest.raises(AuthenticationError):
        workflow.refresh("never-issued")
    with pytest.raises(AuthenticationError):
        workflow.refresh("")


def test_refresh_rejects_expired_session(workflow):
    with freeze_time("2026-03-01 09:00:00"):
        workflow.signup("old@example.com", "pw")
        token = workflow.signin("old@example.com", "pw").tokens.refresh_token
    with freeze_time("2026-03-09 09:00:00"):
        with pytest.raises(AuthenticationError):
            workflow.refresh(token)


# --------------------------------------------------------------------------- password reset

def test_forgot_password_mails_a_link_and_reset_swaps_credentials(workflow, mailer, db):
    user = workflow.signup("reset@example.com", "old-pw")
    workflow.signin("reset@example.com", "old-pw")
    old_salt = user.password_salt

    assert workflow.forgot_password("reset@example.com") is True
    assert mailer.sent[-1]["to"] == "reset@example.com"
    assert mailer.sent[-1]["subject"] == "Password Reset"
    token = mailer.last_reset_token()
    assert token and len(token) == 32

    workflow.reset_password(token, "new-pw")

    refreshed = AccountDirectory(db).find_credential_by_id(user.id)
    assert refreshed.password_salt != old_salt
    assert refreshed.password_reset_token is None
    assert _refresh_rows(db, user.id) == 0
    assert workflow.signin("reset@example.com", "new-pw").user.id == user.id
    with pytest.raises(AuthenticationError):
        workflow.signin("reset@example.com", "old-pw")


def test_reset_token_is_single_use(workflow, mailer):
    workflow.signup("once@example.com", "pw")
    workflow.forgot_password("once@example.com")
    token = mailer.last_reset_token()
    workflow.reset_password(token, "pw2")
    with pytest.raises(ValidationError):
        workflow.reset_password(token, "pw3")


def test_expired_reset_token_is_rejected(workflow, mailer):
    with freeze_time("2026-05-01 10:00:00"):
        workflow.signup("late@example.com", "pw")
        workflow.forgot_password("late@example.com")
        token = mailer.last_reset_token()
    with freeze_time("2026-05-01 11:00:01"):
        with pytest.raises(ValidationError):
            workflow.reset_password(token, "new-pw")
    assert workflow.signin("late@example.com", "pw").user.email == "late@example.com"


def test_reset_rejects_blank_password(workflow, mailer):
    workflow.signup("blank@example.com", "pw")
    workflow.forgot_password("blank@example.com")
    with pytest.raises(ValidationError):
        workflow.reset_password(mailer.last_reset_token(), " ")


def test_forgot_password_for_unknown_email_is_silent_by_default(workflow, mailer):
    assert workflow.forgot_password("nobody@example.com") is False
    assert mailer.sent == []


def test_forgot_password_can_reveal_unknown_email(db, settings, token_service, mailer, media):
    from app.core.security_password import HashingService

    revealing = settings.model_copy(update={"FORGOT_PASSWORD_REVEAL_UNKNOWN": True})
    wf = AuthenticationWorkflow(db, revealing, HashingService(), token_service, mailer, media)
    with pytest.raises(ConflictError):
        wf.forgot_password("nobody@example.com")


def test_forgot_password_surfaces_mail_failure(workflow, mailer):
    workflow.signup("mailfail@example.com", "pw")
    mailer.fail = True
    with pytest.raises(MailDeliveryError):
        workflow.forgot_password("mailfail@example.com")


# --------------------------------------------------------------------------- signout / delete

def test_signout_is_idempotent(workflow, db):
    user = workflow.signup("bye@example.com", "pw")
    workflow.signin("bye@example.com", "pw")

    workflow.signout(user.id)
    workflow.signout(user.id)

    assert _refresh_rows(db, user.id) == 0


def test_signout_unknown_user(workflow):
    with pytest.raises(NotFoundError):
        workflow.signout(9999)


def test_delete_account_removes_user_tokens_and_image(workflow, db, media):
    user = workflow.signup("gone@example.com", "pw")
    workflow.signin("gone@example.com", "pw")
    image_id = media.upload_image(user.id, b"\xff\xd8jpeg")
    AccountDirectory(db).update_image_id(user.id, image_id)
    db.commit()

    workflow.delete_account(user.id)

    assert db.get(User, user.id) is None
    assert _refresh_rows(db, user.id) == 0
    assert media.fetch_image(image_id) is None


class _BrokenMedia(FileMediaStore):
    def delete_image(self, image_id):
        raise OSError("disk went away")


def test_delete_account_rolls_back_when_image_removal_fails(db, settings, token_service, mailer, tmp_path):
    from app.core.security_password import HashingService

    wf = AuthenticationWorkflow(db, settings, HashingService(), token_service, mailer, _BrokenMedia(str(tmp_path)))
    user = wf.signup("stays@example.com", "pw")
    wf.signin("stays@example.com", "pw")
    AccountDirectory(db).update_image_id(user.id, "0" * 32)
    db.commit()

    with pytest.raises(StorageError):
        wf.delete_account(user.id)

    assert AccountDirectory(db).find_credential_by_id(user.id) is not None
    assert _refresh_rows(db, user.id) == 1


def test_delete_unknown_account(workflow):
    with pytest.raises(NotFoundError):
        workflow.delete_account(4242)


# --------------------------------------------------------------------------- session row races / rollback

def test_racing_signins_keep_last_writer(engine, db, workflow, settings, token_service, mailer, media, monkeypatch):
    from app.core.security_password import HashingService
    from app.db.session import make_session_factory

    user = workflow.signup("race@example.com", "pw")
    other_db = make_session_factory(engine)()
    try:
        other = AuthenticationWorkflow(other_db, settings, HashingService(), token_service, mailer, media)
        # the second request read before the first one wrote
        monkeypatch.setattr(other.token_store, "find_refresh_token_by_user_id", lambda user_id: None)

        first = workflow.signin("race@example.com", "pw").tokens
        second = other.signin("race@example.com", "pw").tokens
    finally:
        other_db.close()

    assert _refresh_rows(db, user.id) == 1
    with pytest.raises(AuthenticationError):
        workflow.refresh(first.refresh_token)
    assert workflow.refresh(second.refresh_token).refresh_token


def test_failed_rotation_rolls_back(workflow, db, monkeypatch):
    user = workflow.signup("atomic@example.com", "pw")
    issued = workflow.signin("atomic@example.com", "pw").tokens
    real_upsert = workflow.token_store.upsert_refresh_token

    def write_then_fail(*args, **kwargs):
        real_upsert(*args, **kwargs)
        raise StorageError("Storage failure in upsert_refresh_token")

    monkeypatch.setattr(workflow.token_store, "upsert_refresh_token", write_then_fail)
    with pytest.raises(StorageError):
        workflow.refresh(issued.refresh_token)
    monkeypatch.undo()

    assert _refresh_rows(db, user.id) == 1
    assert workflow.token_store.find_refresh_token_by_user_id(user.id).token == issued.refresh_token
    assert workflow.refresh(issued.refresh_token).refresh_token != issued.refresh_token
