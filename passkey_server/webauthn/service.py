# (c) Copyright Datacraft, 2026
"""Passkey registration and login ceremonies."""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from webauthn import (
	generate_authentication_options,
	generate_registration_options,
	options_to_json,
	verify_authentication_response,
	verify_registration_response,
)
from webauthn.helpers.structs import (
	AttestationConveyancePreference,
	AttestationFormat,
	AuthenticatorSelectionCriteria,
	AuthenticatorTransport,
	COSEAlgorithmIdentifier,
	CredentialDeviceType,
	PublicKeyCredentialDescriptor,
	PublicKeyCredentialType,
	ResidentKeyRequirement,
	UserVerificationRequirement,
)

from pydantic import ValidationError

from passkey_server import codec
from passkey_server.db.orm import Credential, User
from passkey_server.db.store import PasskeyStore
from passkey_server.errors import (
	ChallengeGenerationFailed,
	CredentialVerificationFailed,
	InvalidCredentialData,
	InvalidEmail,
	NoCredentialsRegistered,
	RepositoryError,
	SessionExpiredOrInvalid,
	UserProvisioningFailed,
)
from passkey_server.schema import PublicKeyCredential
from .sessions import CeremonyKind, CeremonySession, SessionStore

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("passkey_server.security")

MIN_EMAIL_LENGTH = 3

SUPPORTED_ALGORITHMS = [
	COSEAlgorithmIdentifier.ECDSA_SHA_256,
	COSEAlgorithmIdentifier.EDDSA,
	COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]


@dataclass
class LoginResult:
	"""Outcome of a successful login ceremony."""
	user: User
	credential: Credential
	clone_warning: bool = False


def validate_email(email: Any) -> str:
	if not isinstance(email, str) or len(email) < MIN_EMAIL_LENGTH or "@" not in email:
		raise InvalidEmail()
	return email


def _transports(values: list[str] | None) -> list[AuthenticatorTransport] | None:
	transports = []
	for value in values or []:
		try:
			transports.append(AuthenticatorTransport(value))
		except ValueError:
			logger.debug(f"Ignoring unknown transport {value!r}")
	return transports or None


def _descriptor(credential: Credential) -> PublicKeyCredentialDescriptor:
	return PublicKeyCredentialDescriptor(
		id=codec.decode(credential.credential_id),
		transports=_transports(credential.transports),
	)


def _aaguid_bytes(aaguid: str | bytes | None) -> bytes | None:
	if not aaguid:
		return None
	if isinstance(aaguid, bytes):
		return aaguid
	return uuid.UUID(aaguid).bytes


class PasskeyService:
	"""Two-phase WebAuthn ceremonies bound to single-use session tokens.

	Begin calls generate a challenge, park it in the session store and hand
	back the options plus a token. Finish calls consume the token first, so
	every finish attempt (successful or not) burns it.
	"""

	def __init__(
		self,
		store: PasskeyStore,
		sessions: SessionStore,
		rp_id: str = "localhost",
		rp_name: str = "Passkey Server",
		origin: str = "https://localhost",
		timeout: int = 60000,
	):
		self.store = store
		self.sessions = sessions
		self.rp_id = rp_id
		self.rp_name = rp_name
		self.origin = origin
		self.timeout = timeout

	def begin_registration(self, email: Any) -> tuple[dict, str]:
		"""Start registering a passkey for ``email``.

		Returns:
			Tuple of (creation options, session token)
		"""
		email = validate_email(email)
		user = self._get_or_create_user(email)

		try:
			existing = self.store.list_credentials(user)
		except RepositoryError as e:
			logger.error(f"Failed to load credentials for {email}: {e!r}")
			raise UserProvisioningFailed() from e

		try:
			options = generate_registration_options(
				rp_id=self.rp_id,
				rp_name=self.rp_name,
				user_id=user.id.encode(),
				user_name=user.email,
				user_display_name=user.display_name,
				timeout=self.timeout,
				attestation=AttestationConveyancePreference.NONE,
				authenticator_selection=AuthenticatorSelectionCriteria(
					resident_key=ResidentKeyRequirement.PREFERRED,
					user_verification=UserVerificationRequirement.PREFERRED,
				),
				supported_pub_key_algs=SUPPORTED_ALGORITHMS,
				exclude_credentials=[_descriptor(cred) for cred in existing],
			)
			public_key = json.loads(options_to_json(options))
		except Exception as e:
			logger.error(f"Failed to begin registration for {email}: {e!r}")
			raise ChallengeGenerationFailed() from e

		token = self.sessions.create(
			CeremonyKind.REGISTRATION,
			CeremonySession(
				kind=CeremonyKind.REGISTRATION,
				challenge=options.challenge,
				email=email,
			),
		)

		logger.info(f"Started passkey registration for {email}")
		return {"publicKey": public_key}, token

	def finish_registration(
		self,
		token: str | None,
		client_response: Any,
	) -> Credential:
		"""Verify the attestation and persist the new credential."""
		session = self.sessions.consume(CeremonyKind.REGISTRATION, token)
		if session is None:
			security_logger.warning("Registration finish with invalid or expired session")
			raise SessionExpiredOrInvalid("Invalid or expired registration session")

		user = self._get_or_create_user(session.email)
		raw_id = self._raw_id(client_response, session)

		try:
			verification = verify_registration_response(
				credential=client_response,
				expected_challenge=session.challenge,
				expected_rp_id=self.rp_id,
				expected_origin=self.origin,
				require_user_verification=False,
				supported_pub_key_algs=SUPPORTED_ALGORITHMS,
			)
		except Exception as e:
			security_logger.warning(
				f"Registration verification failed for {session.email}: {e!r}"
			)
			raise CredentialVerificationFailed() from e

		if verification.credential_id != raw_id:
			security_logger.warning(f"Registration rawId mismatch for {session.email}")
			raise CredentialVerificationFailed()

		response = client_response.get("response") or {}
		transports = [t for t in response.get("transports") or [] if isinstance(t, str)]

		credential = Credential(
			credential_id=codec.encode(verification.credential_id),
			public_key=codec.encode(verification.credential_public_key),
			attestation_type=AttestationFormat(verification.fmt).value,
			aaguid=codec.encode(_aaguid_bytes(verification.aaguid)),
			sign_count=verification.sign_count,
			credential_type=PublicKeyCredentialType(verification.credential_type).value,
			transports=transports,
			backup_eligible=verification.credential_device_type == CredentialDeviceType.MULTI_DEVICE,
			backup_state=verification.credential_backed_up,
			last_used_at=datetime.now(timezone.utc),
		)
		try:
			credential = self.store.add_credential(user, credential)
		except RepositoryError as e:
			logger.error(f"Failed to save credential for {session.email}: {e!r}")
			raise

		logger.info(f"Registered passkey for {session.email}")
		return credential

	def begin_login(self, email: Any) -> tuple[dict, str]:
		"""Start a login ceremony restricted to the user's credentials.

		Returns:
			Tuple of (request options, session token)
		"""
		email = validate_email(email)
		user = self._get_or_create_user(email)

		try:
			credentials = self.store.list_credentials(user)
		except RepositoryError as e:
			logger.error(f"Failed to load credentials for {email}: {e!r}")
			raise UserProvisioningFailed() from e

		if not credentials:
			logger.warning(f"Login requested for {email} without registered passkeys")
			raise NoCredentialsRegistered()

		allow_credentials = [_descriptor(cred) for cred in credentials]
		try:
			options = generate_authentication_options(
				rp_id=self.rp_id,
				timeout=self.timeout,
				allow_credentials=allow_credentials,
				user_verification=UserVerificationRequirement.PREFERRED,
			)
			public_key = json.loads(options_to_json(options))
		except Exception as e:
			logger.error(f"Failed to begin login for {email}: {e!r}")
			raise ChallengeGenerationFailed() from e

		token = self.sessions.create(
			CeremonyKind.LOGIN,
			CeremonySession(
				kind=CeremonyKind.LOGIN,
				challenge=options.challenge,
				email=email,
				allowed_credential_ids=[d.id for d in allow_credentials],
				user_verification=UserVerificationRequirement.PREFERRED.value,
			),
		)

		logger.info(f"Started passkey login for {email}")
		return {"publicKey": public_key}, token

	def finish_login(self, token: str | None, client_response: Any) -> LoginResult:
		"""Verify the assertion and record the new signature counter.

		A counter that did not move forward flags a clone warning. The
		warning is logged and returned but does not fail the login.
		"""
		session = self.sessions.consume(CeremonyKind.LOGIN, token)
		if session is None:
			security_logger.warning("Login finish with invalid or expired session")
			raise SessionExpiredOrInvalid("Invalid or expired login session")

		try:
			user = self.store.get_user_by_email(session.email)
		except RepositoryError as e:
			logger.error(f"Failed to load user {session.email}: {e!r}")
			raise CredentialVerificationFailed() from e
		if user is None:
			security_logger.warning(f"Login finish for vanished user {session.email}")
			raise CredentialVerificationFailed()

		raw_id = self._raw_id(client_response, session)

		if raw_id not in session.allowed_credential_ids:
			security_logger.warning(f"Login with a credential not offered to {session.email}")
			raise CredentialVerificationFailed()

		encoded_id = codec.encode(raw_id)
		try:
			stored = next(
				(c for c in self.store.list_credentials(user) if c.credential_id == encoded_id),
				None,
			)
		except RepositoryError as e:
			logger.error(f"Failed to load credentials for {session.email}: {e!r}")
			raise
		if stored is None:
			security_logger.warning(f"Unknown credential in login for {session.email}")
			raise CredentialVerificationFailed()

		try:
			# counter policy is applied below, so the library never rejects on it
			verification = verify_authentication_response(
				credential=client_response,
				expected_challenge=session.challenge,
				expected_rp_id=self.rp_id,
				expected_origin=self.origin,
				credential_public_key=codec.decode(stored.public_key),
				credential_current_sign_count=0,
				require_user_verification=session.user_verification == UserVerificationRequirement.REQUIRED.value,
			)
		except Exception as e:
			security_logger.warning(f"Login verification failed for {session.email}: {e!r}")
			raise CredentialVerificationFailed() from e

		reported = verification.new_sign_count
		clone_warning = (reported != 0 or stored.sign_count != 0) and reported <= stored.sign_count
		if clone_warning:
			security_logger.warning(
				f"Clone warning for credential {stored.id} of {session.email}: "
				f"sign count {reported} did not exceed {stored.sign_count}"
			)
		else:
			stored.sign_count = reported

		stored.backup_state = verification.credential_backed_up
		stored.last_used_at = datetime.now(timezone.utc)
		try:
			stored = self.store.update_credential(stored)
		except RepositoryError as e:
			logger.error(f"Failed to update credential for {session.email}: {e!r}")
			raise

		logger.info(f"Passkey login successful for {session.email}")
		return LoginResult(user=user, credential=stored, clone_warning=clone_warning)

	def _get_or_create_user(self, email: str) -> User:
		try:
			return self.store.get_or_create_user(email)
		except RepositoryError as e:
			logger.error(f"Failed to get/create user for {email}: {e!r}")
			raise UserProvisioningFailed() from e

	def _raw_id(self, client_response: Any, session: CeremonySession) -> bytes:
		if not isinstance(client_response, dict):
			logger.warning(f"{session.kind.value} finish without credential data for {session.email}")
			raise InvalidCredentialData()
		try:
			raw_id = PublicKeyCredential.model_validate(client_response).raw_id
		except ValidationError as e:
			logger.warning(f"{session.kind.value} finish with malformed rawId for {session.email}")
			raise InvalidCredentialData() from e
		if not raw_id:
			raise InvalidCredentialData()
		return raw_id
