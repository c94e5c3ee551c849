"""
Shared fixtures: an in-memory database per test, the ceremony services wired
against it, and a TestClient for the API.
"""
import os

# Settings are read at import time by the engine module
os.environ.setdefault("PK_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PK_TOTP_ISSUER", "Passkey Test")
os.environ.setdefault("PK_DB_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from passkey_server.config import Settings
from passkey_server.db import Base, SqlPasskeyStore, User
from passkey_server.db.engine import get_db
from passkey_server.main import create_app
from passkey_server.mfa import TOTPManager, TOTPService
from passkey_server.utils import create_token
from passkey_server.webauthn import PasskeyService, SessionStore

from tests.helpers.software_authenticator import SoftwareAuthenticator

RP_ID = "localhost"
ORIGIN = "https://localhost"


@pytest.fixture
def settings():
    return Settings(
        secret_key="test-secret-key",
        totp_issuer="Passkey Test",
        db_url="sqlite://",
        proto="https",
        host=RP_ID,
        session_sweep_interval=0,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(engine, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return SqlPasskeyStore(db)


@pytest.fixture
def sessions():
    return SessionStore(ttl_seconds=300)


@pytest.fixture
def passkey_service(store, sessions):
    return PasskeyService(
        store=store,
        sessions=sessions,
        rp_id=RP_ID,
        rp_name="Passkey Test",
        origin=ORIGIN,
    )


@pytest.fixture
def totp_manager():
    return TOTPManager(issuer_name="Passkey Test")


@pytest.fixture
def totp_service(store, totp_manager):
    return TOTPService(store=store, manager=totp_manager)


@pytest.fixture
def authenticator():
    return SoftwareAuthenticator()


@pytest.fixture
def app(settings, db):
    app = create_app(settings)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def user(db):
    user = User(email="alice@example.com", name="Alice")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def auth_headers(settings):
    def make(user: User) -> dict:
        return {"Authorization": f"Bearer {create_token(user, settings)}"}
    return make
