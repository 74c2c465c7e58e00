API = "/api/v1"


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_signup_returns_public_profile(client):
    resp = client.post(
        f"{API}/signup",
        json={"email": "api@example.com", "password": "pw", "timezone": "Europe/Lisbon", "birthDate": "5 Jan 1990"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["email"] == "api@example.com"
    assert body["role"] == "owner"
    assert body["timezone_id"] == "Europe/Lisbon"
    assert body["birth_date"] == "1990-01-05"
    assert "password_hash" not in body and "password_salt" not in body


def test_signup_duplicate_is_conflict(client):
    client.post(f"{API}/signup", json={"email": "twice@example.com", "password": "pw"})
    resp = client.post(f"{API}/signup", json={"email": "twice@example.com", "password": "pw"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "CONFLICT"


def test_signup_with_bad_timezone_is_bad_request(client):
    resp = client.post(f"{API}/signup", json={"email": "tz@example.com", "password": "pw", "timezone": "Not/AZone"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_ARGUMENT"


def test_malformed_body_is_bad_request(client):
    resp = client.post(f"{API}/signup", json={"email": "missing-password@example.com"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_signin_returns_tokens_and_user(signed_in):
    body = signed_in()
    assert body["message"] == "Successful authentication."
    assert body["token_type"] == "bearer"
    assert body["access_token"] and body["refresh_token"]
    assert body["user"]["email"] == "a@b.com"


def test_signin_failures(client):
    client.post(f"{API}/signup", json={"email": "a@b.com", "password": "pw"})
    assert client.post(f"{API}/signin", json={"email": "a@b.com", "password": "bad"}).status_code == 401
    assert client.post(f"{API}/signin", json={"email": "x@b.com", "password": "pw"}).status_code == 404


def test_token_refresh_rotates(client, signed_in):
    old = signed_in()["refresh_token"]

    resp = client.post(f"{API}/token-refresh", json={"refreshToken": old})
    assert resp.status_code == 201
    assert resp.json()["message"] == "Token refreshed"
    assert resp.json()["refresh_token"] != old

    replay = client.post(f"{API}/token-refresh", json={"refreshToken": old})
    assert replay.status_code == 401
    assert replay.json()["message"] == "Invalid refresh token. Sign in."


def test_forgot_and_reset_password(client, signed_in, mailer):
    signed_in()
    generic = client.post(f"{API}/forgot-password", json={"email": "a@b.com"})
    unknown = client.post(f"{API}/forgot-password", json={"email": "nobody@b.com"})
    assert generic.status_code == unknown.status_code == 200
    assert generic.json() == unknown.json()
    assert len(mailer.sent) == 1

    resp = client.post(f"{API}/reset-password", json={"token": mailer.last_reset_token(), "newPassword": "fresh"})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Password reset successfully."
    assert client.post(f"{API}/signin", json={"email": "a@b.com", "password": "fresh"}).status_code == 200


def test_reset_with_bogus_token(client):
    resp = client.post(f"{API}/reset-password", json={"token": "nope", "newPassword": "x"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid or expired token."


def test_mail_failure_is_bad_gateway(client, signed_in, mailer):
    signed_in()
    mailer.fail = True
    resp = client.post(f"{API}/forgot-password", json={"email": "a@b.com"})
    assert resp.status_code == 502
    assert resp.json()["code"] == "MAIL_DELIVERY_FAILED"


def test_signout_own_sessions(client, signed_in):
    body = signed_in()
    headers = {"Authorization": f"Bearer {body['access_token']}"}
    user_id = body["user"]["id"]

    resp = client.post(f"{API}/signout", json={"userId": user_id}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "User signed out successfully"
    assert client.post(f"{API}/token-refresh", json={"refreshToken": body["refresh_token"]}).status_code == 401


def test_signout_requires_a_token(client):
    resp = client.post(f"{API}/signout", json={"userId": 1})
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def test_signout_of_someone_else_needs_staff(client, signed_in, bearer):
    target = signed_in()["user"]["id"]
    assert client.post(f"{API}/signout", json={"userId": target}, headers=bearer(999, "user")).status_code == 403
    assert client.post(f"{API}/signout", json={"userId": target}, headers=bearer(999, "admin")).status_code == 200
