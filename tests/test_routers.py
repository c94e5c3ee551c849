import io

import jwt
from fastapi.testclient import TestClient
from PIL import Image

from passkey_server.db import MfaChallenge, User
from passkey_server.main import create_app
from passkey_server.mfa import TOTPManager

from tests.conftest import ORIGIN


def register(client, authenticator, email="a@b.com"):
    begin = client.post("/api/passkey/register/begin", json={"email": email})
    assert begin.status_code == 200
    token = begin.headers["Session-Key"]

    response = authenticator.create(begin.json(), ORIGIN)
    return client.post(
        "/api/passkey/register/finish",
        json=response,
        headers={"Session-Key": token},
    )


# Passkeys

def test_register_flow(client, authenticator, db):
    finish = register(client, authenticator)

    assert finish.status_code == 200
    assert finish.json() == "Registration Success"
    user = db.query(User).filter_by(email="a@b.com").one()
    assert len(user.credentials) == 1


def test_register_begin_rejects_bad_email(client):
    response = client.post("/api/passkey/register/begin", json={"email": "nope"})
    assert response.status_code == 400


def test_register_finish_requires_header(client, authenticator):
    response = client.post("/api/passkey/register/finish", json={"rawId": "AAAA"})
    assert response.status_code == 400


def test_register_finish_replay(client, authenticator):
    begin = client.post("/api/passkey/register/begin", json={"email": "a@b.com"})
    token = begin.headers["Session-Key"]
    payload = authenticator.create(begin.json(), ORIGIN)
    headers = {"Session-Key": token}

    assert client.post("/api/passkey/register/finish", json=payload, headers=headers).status_code == 200
    replay = client.post("/api/passkey/register/finish", json=payload, headers=headers)
    assert replay.status_code == 401


def test_register_finish_verification_failure_clears_cookie(client, authenticator):
    begin = client.post("/api/passkey/register/begin", json={"email": "a@b.com"})
    payload = authenticator.create(begin.json(), "https://evil.example")

    response = client.post(
        "/api/passkey/register/finish",
        json=payload,
        headers={"Session-Key": begin.headers["Session-Key"]},
    )
    assert response.status_code == 400
    assert "sid=" in response.headers["set-cookie"]


def test_register_finish_without_body(client):
    begin = client.post("/api/passkey/register/begin", json={"email": "a@b.com"})
    response = client.post(
        "/api/passkey/register/finish",
        content=b"not json",
        headers={"Session-Key": begin.headers["Session-Key"]},
    )
    assert response.status_code == 400


def test_login_flow(client, authenticator, settings):
    register(client, authenticator)

    begin = client.post("/api/passkey/login/begin", json={"email": "a@b.com"})
    assert begin.status_code == 200
    token = begin.headers["Login-Key"]

    finish = client.post(
        "/api/passkey/login/finish",
        json=authenticator.get(begin.json(), ORIGIN),
        headers={"Login-Key": token},
    )
    assert finish.status_code == 200
    body = finish.json()
    assert body["meta"] == {"authMethod": "passkeys"}
    assert body["record"]["email"] == "a@b.com"
    assert body["record"]["multiFactorAuth"] is False

    claims = jwt.decode(body["token"], settings.secret_key, algorithms=["HS256"])
    assert claims["sub"] == body["record"]["id"]


def test_login_begin_without_passkeys(client):
    response = client.post("/api/passkey/login/begin", json={"email": "x@y.com"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication failed"


def test_login_finish_requires_header(client):
    response = client.post("/api/passkey/login/finish", json={"rawId": "AAAA"})
    assert response.status_code == 400


def test_login_finish_bad_assertion(client, authenticator):
    register(client, authenticator)
    begin = client.post("/api/passkey/login/begin", json={"email": "a@b.com"})

    response = client.post(
        "/api/passkey/login/finish",
        json=authenticator.get(begin.json(), "https://evil.example"),
        headers={"Login-Key": begin.headers["Login-Key"]},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication failed"


def test_cors_exposes_ceremony_headers(settings):
    settings.cors_origins = ["https://app.example"]
    client = TestClient(create_app(settings))
    response = client.options(
        "/api/passkey/register/begin",
        headers={
            "Origin": "https://app.example",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.headers["access-control-allow-origin"] == "https://app.example"

    response = client.post(
        "/api/passkey/register/begin",
        json={"email": "nope"},
        headers={"Origin": "https://app.example"},
    )
    exposed = response.headers["access-control-expose-headers"]
    assert "Session-Key" in exposed
    assert "Login-Key" in exposed


# TOTP

def test_qr_requires_auth(client, user):
    response = client.get("/api/totp/qr", params={"userId": user.id})
    assert response.status_code == 401


def test_qr_regenerate(client, user, auth_headers, db):
    response = client.get(
        "/api/totp/qr",
        params={"userId": user.id, "regenerate": "true"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert Image.open(io.BytesIO(response.content)).size == (200, 200)

    db.refresh(user)
    assert user.totp_secret
    assert user.multi_factor_auth


def test_qr_without_secret(client, user, auth_headers):
    response = client.get(
        "/api/totp/qr",
        params={"userId": user.id},
        headers=auth_headers(user),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "No TOTP configuration found. Please regenerate."


def test_qr_parameter_validation(client, user, auth_headers):
    headers = auth_headers(user)
    assert client.get("/api/totp/qr", headers=headers).status_code == 400
    assert client.get("/api/totp/qr", params={"userId": "short"}, headers=headers).status_code == 400
    assert client.get(
        "/api/totp/qr",
        params={"userId": user.id, "regenerate": "maybe"},
        headers=headers,
    ).status_code == 400
    assert client.get(
        "/api/totp/qr",
        params={"userId": "unknownunknownx"},
        headers=headers,
    ).status_code == 404


def test_qr_for_other_user_is_forbidden(client, user, auth_headers, db):
    other = User(email="mallory@example.com")
    db.add(other)
    db.commit()

    response = client.get(
        "/api/totp/qr",
        params={"userId": user.id, "regenerate": "true"},
        headers=auth_headers(other),
    )
    assert response.status_code == 403
    db.refresh(user)
    assert user.totp_secret is None


def test_qr_superuser_may_view_others(client, user, auth_headers, db):
    admin = User(email="admin@example.com", is_superuser=True)
    db.add(admin)
    db.commit()

    response = client.get(
        "/api/totp/qr",
        params={"userId": user.id, "regenerate": "1"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200


def test_totp_login(client, user, db):
    manager = TOTPManager(issuer_name="Passkey Test")
    user.totp_secret = manager.generate_secret()
    mfa = MfaChallenge(record_ref=user.id)
    db.add(mfa)
    db.commit()

    response = client.post(
        "/api/totp/login",
        json={"mfaId": mfa.id, "passcode": manager.get_current_code(user.totp_secret)},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["meta"] == {"authMethod": "totp"}
    assert body["record"]["id"] == user.id


def test_totp_login_errors(client, user, db):
    mfa = MfaChallenge(record_ref=user.id)
    db.add(mfa)
    db.commit()

    assert client.post("/api/totp/login", json={"passcode": "123456"}).status_code == 400
    assert client.post("/api/totp/login", json={"mfaId": mfa.id}).status_code == 400
    assert client.post(
        "/api/totp/login", json={"mfaId": mfa.id, "passcode": "12ab56"},
    ).status_code == 400
    assert client.post(
        "/api/totp/login", json={"mfaId": "unknownunknownx", "passcode": "123456"},
    ).status_code == 401
    # no secret configured yet
    assert client.post(
        "/api/totp/login", json={"mfaId": mfa.id, "passcode": "123456"},
    ).status_code == 401


def test_login_finish_for_vanished_user(client, authenticator, db):
    register(client, authenticator)
    begin = client.post("/api/passkey/login/begin", json={"email": "a@b.com"})

    user = db.query(User).filter_by(email="a@b.com").one()
    for credential in list(user.credentials):
        db.delete(credential)
    db.delete(user)
    db.commit()

    response = client.post(
        "/api/passkey/login/finish",
        json=authenticator.get(begin.json(), ORIGIN),
        headers={"Login-Key": begin.headers["Login-Key"]},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication failed"
