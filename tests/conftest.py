"""Shared fixtures: in-memory SQLite, fake mail sender, temp-dir media store."""

import re

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.errors import MailDeliveryError
from app.core.security_password import HashingService
from app.core.tokens import TokenClaim, TokenConfig, TokenService
from app.db.base import Base
from app.db.session import make_engine, make_session_factory
from app.main import create_app
from app.services.auth import AuthenticationWorkflow
from app.services.media import FileMediaStore

SECRET = "test-secret-0123456789-abcdefghijklmnop"


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_email(self, to, subject, html_body):
        if self.fail:
            raise MailDeliveryError("Failed to send email.")
        self.sent.append({"to": to, "subject": subject, "html": html_body})

    def last_reset_token(self):
        match = re.search(r"token=([A-Za-z0-9]+)", self.sent[-1]["html"])
        return match.group(1) if match else None


@pytest.fixture
def settings(tmp_path):
    return Settings(
        JWT_SECRET=SECRET,
        DATABASE_URL="sqlite://",
        DATA_DIR=str(tmp_path),
        RUN_MIGRATIONS=False,
        METRICS_ENABLED=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def media(tmp_path):
    return FileMediaStore(str(tmp_path))


@pytest.fixture
def token_service(settings):
    return TokenService(TokenConfig.from_settings(settings))


@pytest.fixture
def workflow(db, settings, token_service, mailer, media):
    return AuthenticationWorkflow(db, settings, HashingService(), token_service, mailer, media)


@pytest.fixture
def app(settings, engine, mailer, media):
    return create_app(settings, mailer=mailer, media_store=media, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def signed_in(client):
    """Signs up and signs in a fresh account; returns the signin payload."""

    def _make(email="a@b.com", password="hunter2"):
        assert client.post("/api/v1/signup", json={"email": email, "password": password}).status_code == 201
        resp = client.post("/api/v1/signin", json={"email": email, "password": password})
        assert resp.status_code == 200
        return resp.json()

    return _make


@pytest.fixture
def bearer(app):
    """Mints an access token for an arbitrary user id / role."""

    def _make(user_id=1, role="owner"):
        token = app.state.token_service.generate_access_token(
            [TokenClaim("userId", str(user_id)), TokenClaim("role", role)], "UTC"
        )
        return {"Authorization": f"Bearer {token}"}

    return _make
