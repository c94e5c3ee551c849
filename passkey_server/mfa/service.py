# (c) Copyright Datacraft, 2026
"""TOTP enrollment and passcode login."""
import logging
import re
from dataclasses import dataclass

from passkey_server.db.orm import User
from passkey_server.db.store import PasskeyStore
from passkey_server.errors import (
	InvalidMfaRecord,
	InvalidPasscode,
	InvalidPasscodeFormat,
	InvalidStoredSecret,
	MfaRecordNotFound,
	SecretNotConfigured,
	UserNotFound,
)
from .totp import TOTPManager

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("passkey_server.security")

PASSCODE_PATTERN = re.compile(r"^[0-9]{6}$")


@dataclass
class TOTPEnrollment:
	"""Enrollment image plus whether a new secret was persisted."""
	image: bytes
	secret: str
	persisted: bool


class TOTPService:
	"""Provisions TOTP secrets and validates passcodes against them.

	Authorization to regenerate a secret is checked by the caller.
	"""

	def __init__(self, store: PasskeyStore, manager: TOTPManager):
		self.store = store
		self.manager = manager

	def provision_or_fetch(self, user: User, regenerate: bool = False) -> TOTPEnrollment:
		"""Return the enrollment QR, rotating the secret when ``regenerate``.

		Raises:
			SecretNotConfigured: no stored secret and ``regenerate`` is False
			InvalidStoredSecret: the stored secret does not decode
		"""
		if regenerate:
			secret = self.manager.generate_secret()
			self.store.save_totp_secret(user, secret)
			logger.info(f"Regenerated TOTP secret for user {user.id}")
		else:
			secret = user.totp_secret
			if not secret:
				logger.warning(f"No existing TOTP secret for user {user.id}")
				raise SecretNotConfigured()
			try:
				self.manager.decode_secret(secret)
			except InvalidStoredSecret:
				logger.error(f"Invalid TOTP secret format for user {user.id}")
				raise

		uri = self.manager.provisioning_uri(secret, user.email)
		return TOTPEnrollment(
			image=self.manager.render_qr(uri),
			secret=secret,
			persisted=regenerate,
		)

	def validate(self, user_id: str, passcode: str) -> bool:
		"""Check ``passcode`` against the user's secret. Fails closed."""
		user = self.store.get_user(user_id)
		if user is None or not user.totp_secret:
			return False

		try:
			self.manager.decode_secret(user.totp_secret)
		except InvalidStoredSecret:
			logger.error(f"Invalid TOTP secret format for user {user_id}")
			return False

		return self.manager.verify_code(user.totp_secret, passcode)

	def login(self, mfa_id: str, passcode: str) -> User:
		"""Resolve the MFA transaction to its user and check the passcode."""
		if not isinstance(passcode, str) or not PASSCODE_PATTERN.match(passcode):
			logger.warning(f"Invalid passcode format for mfaId {mfa_id}")
			raise InvalidPasscodeFormat()

		mfa = self.store.get_mfa(mfa_id)
		if mfa is None:
			security_logger.warning(f"TOTP login with unknown MFA record {mfa_id}")
			raise MfaRecordNotFound()

		if not mfa.record_ref:
			logger.error(f"Missing recordRef in MFA record {mfa_id}")
			raise InvalidMfaRecord()

		user = self.store.get_user(mfa.record_ref)
		if user is None:
			logger.error(f"User not found for MFA record {mfa_id}")
			raise UserNotFound("Invalid authentication request")

		if not user.totp_secret:
			logger.error(f"No TOTP secret configured for user {user.id}")
			raise SecretNotConfigured("TOTP not configured for this account")

		if not self.validate(user.id, passcode):
			security_logger.warning(f"Invalid passcode attempt for user {user.id}")
			raise InvalidPasscode()

		logger.info(f"TOTP login successful for user {user.id}")
		return user
