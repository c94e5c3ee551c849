import pytest

from passkey_server import codec
from passkey_server.db import Credential, PasskeyStore
from passkey_server.errors import (
    CredentialVerificationFailed,
    DuplicateCredential,
    InvalidCredentialData,
    InvalidEmail,
    SessionExpiredOrInvalid,
)
from passkey_server.webauthn import CeremonyKind, PasskeyService, SessionStore

from tests.conftest import ORIGIN, RP_ID


class UntouchableStore(PasskeyStore):
    """Fails the test on any repository access."""

    def __getattribute__(self, name):
        if name in {"__class__", "__dict__"}:
            return object.__getattribute__(self, name)
        raise AssertionError(f"repository accessed: {name}")


def test_begin_registration_returns_options_and_token(passkey_service, sessions, store):
    options, token = passkey_service.begin_registration("a@b.com")

    public_key = options["publicKey"]
    assert public_key["rp"]["id"] == RP_ID
    assert public_key["user"]["name"] == "a@b.com"
    assert public_key["attestation"] == "none"
    assert len(codec.decode(public_key["challenge"])) >= 32
    assert len(token) >= 43
    assert len(sessions) == 1
    assert store.get_user_by_email("a@b.com") is not None


def test_begin_registration_uses_fresh_challenges(passkey_service):
    first, _ = passkey_service.begin_registration("a@b.com")
    second, _ = passkey_service.begin_registration("a@b.com")
    assert first["publicKey"]["challenge"] != second["publicKey"]["challenge"]


@pytest.mark.parametrize("email", ["", "ab", "no-at-sign", None, 12345])
def test_begin_registration_rejects_bad_email(passkey_service, email):
    with pytest.raises(InvalidEmail):
        passkey_service.begin_registration(email)


def test_register_and_replay(passkey_service, authenticator, store):
    options, token = passkey_service.begin_registration("a@b.com")
    response = authenticator.create(options, ORIGIN)

    credential = passkey_service.finish_registration(token, response)

    user = store.get_user_by_email("a@b.com")
    assert credential.user_id == user.id
    assert credential.credential_id == response["rawId"]
    assert credential.attestation_type == "none"
    assert credential.credential_type == "public-key"
    assert credential.sign_count == 0
    assert credential.transports == ["internal"]
    assert credential.aaguid == codec.encode(b"\x00" * 16)
    assert [c.id for c in store.list_credentials(user)] == [credential.id]

    with pytest.raises(SessionExpiredOrInvalid):
        passkey_service.finish_registration(token, response)


def test_unknown_token_never_touches_repository(authenticator):
    service = PasskeyService(
        store=UntouchableStore(),
        sessions=SessionStore(),
        rp_id=RP_ID,
        origin=ORIGIN,
    )
    with pytest.raises(SessionExpiredOrInvalid):
        service.finish_registration("unknown-token", {"rawId": "AAAA"})

    with pytest.raises(SessionExpiredOrInvalid):
        service.finish_login("unknown-token", {"rawId": "AAAA"})


def test_failed_finish_burns_token(passkey_service, authenticator, sessions):
    options, token = passkey_service.begin_registration("a@b.com")
    response = authenticator.create(options, "https://evil.example")

    with pytest.raises(CredentialVerificationFailed):
        passkey_service.finish_registration(token, response)

    assert sessions.consume(CeremonyKind.REGISTRATION, token) is None


def test_finish_with_wrong_challenge(passkey_service, authenticator):
    first, _ = passkey_service.begin_registration("a@b.com")
    _, token = passkey_service.begin_registration("a@b.com")
    response = authenticator.create(first, ORIGIN)

    with pytest.raises(CredentialVerificationFailed):
        passkey_service.finish_registration(token, response)


@pytest.mark.parametrize("payload", [None, [], {"rawId": "bad/id"}, {"id": "abc"}])
def test_finish_with_malformed_credential(passkey_service, payload):
    _, token = passkey_service.begin_registration("a@b.com")
    with pytest.raises(InvalidCredentialData):
        passkey_service.finish_registration(token, payload)


def test_existing_credentials_are_excluded(passkey_service, authenticator):
    options, token = passkey_service.begin_registration("a@b.com")
    response = authenticator.create(options, ORIGIN)
    passkey_service.finish_registration(token, response)

    options, _ = passkey_service.begin_registration("a@b.com")
    excluded = [c["id"] for c in options["publicKey"]["excludeCredentials"]]
    assert excluded == [response["rawId"]]


def test_duplicate_credential(store, user):
    credential_id = codec.encode(b"\x07" * 32)
    store.add_credential(user, Credential(credential_id=credential_id, public_key="AQID"))

    with pytest.raises(DuplicateCredential):
        store.add_credential(user, Credential(credential_id=credential_id, public_key="BAUG"))
