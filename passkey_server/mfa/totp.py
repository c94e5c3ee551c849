# (c) Copyright Datacraft, 2026
"""TOTP (Time-based One-Time Password) implementation."""

import base64
import binascii
import hashlib
import io
import secrets

import pyotp
import qrcode
from PIL import Image

from passkey_server.errors import InvalidStoredSecret

QR_IMAGE_SIZE = (200, 200)
DIGESTS = {
	"sha1": hashlib.sha1,
	"sha256": hashlib.sha256,
	"sha512": hashlib.sha512,
}


class TOTPManager:
	"""RFC 6238 secrets, provisioning URIs and passcode checks.

	Args:
		issuer_name: Issuer shown in authenticator apps
		digits: Passcode length
		interval: Time step in seconds
		algorithm: HMAC digest (sha1, sha256, sha512)
	"""

	def __init__(
		self,
		issuer_name: str,
		digits: int = 6,
		interval: int = 30,
		algorithm: str = "sha1",
	):
		self.issuer_name = issuer_name
		self.digits = digits
		self.interval = interval
		if algorithm not in DIGESTS:
			raise ValueError(f"Unsupported TOTP algorithm: {algorithm}")
		self.algorithm = algorithm

	def generate_secret(self) -> str:
		"""Generate a new random TOTP secret.

		Returns:
			Base32-encoded secret string (160 bits)
		"""
		random_bytes = secrets.token_bytes(20)
		return base64.b32encode(random_bytes).decode("utf-8").rstrip("=")

	def decode_secret(self, secret: str) -> bytes:
		"""Decode a stored base32 secret.

		Raises:
			InvalidStoredSecret: if the stored value is not valid base32
		"""
		try:
			return self.get_totp(secret).byte_secret()
		except (binascii.Error, ValueError) as e:
			raise InvalidStoredSecret() from e

	def get_totp(self, secret: str) -> pyotp.TOTP:
		return pyotp.TOTP(
			secret,
			digits=self.digits,
			interval=self.interval,
			digest=DIGESTS[self.algorithm],
		)

	def provisioning_uri(self, secret: str, user_email: str) -> str:
		"""Generate otpauth:// URI bound to the issuer and the user's email."""
		return self.get_totp(secret).provisioning_uri(
			name=user_email,
			issuer_name=self.issuer_name,
		)

	def render_qr(self, provisioning_uri: str) -> bytes:
		"""Render the provisioning URI as a 200x200 PNG."""
		qr = qrcode.QRCode(
			error_correction=qrcode.constants.ERROR_CORRECT_M,
			box_size=10,
			border=4,
		)
		qr.add_data(provisioning_uri)
		qr.make(fit=True)

		img = qr.make_image(fill_color="black", back_color="white").get_image()
		img = img.convert("RGB").resize(QR_IMAGE_SIZE, Image.NEAREST)

		buffer = io.BytesIO()
		img.save(buffer, format="PNG")
		return buffer.getvalue()

	def verify_code(
		self,
		secret: str,
		code: str,
		valid_window: int = 1,
	) -> bool:
		"""Check ``code`` against the current step, tolerating ``valid_window``
		steps of clock skew either way. No replay tracking.
		"""
		code = code.replace(" ", "").replace("-", "")

		if not code.isdigit() or len(code) != self.digits:
			return False

		return self.get_totp(secret).verify(code, valid_window=valid_window)

	def get_current_code(self, secret: str) -> str:
		"""Get the current TOTP code (for testing)."""
		return self.get_totp(secret).now()
