# (c) Copyright Datacraft, 2026
"""URL-safe unpadded base64 used for every binary field on the wire."""
import base64
import binascii
import re
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

from passkey_server.errors import MalformedEncoding

_ALPHABET = re.compile(r"^[A-Za-z0-9_-]*$")


def encode(data: bytes | None) -> str | None:
	"""Encode bytes as URL-safe base64 without padding."""
	if data is None:
		return None
	return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def decode(value: str | bytes | None) -> bytes | None:
	"""Decode URL-safe base64, with or without padding.

	``None`` and the literal ``"null"`` decode to ``None``. Characters outside
	the URL-safe alphabet raise :class:`MalformedEncoding`.
	"""
	if value is None:
		return None
	if isinstance(value, bytes):
		try:
			value = value.decode("ascii")
		except UnicodeDecodeError as e:
			raise MalformedEncoding() from e
	if value == "null":
		return None

	value = value.rstrip("=")
	if not _ALPHABET.match(value):
		raise MalformedEncoding()

	try:
		return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
	except (binascii.Error, ValueError) as e:
		raise MalformedEncoding() from e


def _validate(value):
	if isinstance(value, (str, bytes)) or value is None:
		try:
			return decode(value)
		except MalformedEncoding as e:
			# pydantic only wraps ValueError/AssertionError
			raise ValueError(e.message) from e
	raise ValueError("expected a base64url string")


URLEncodedBase64 = Annotated[
	bytes | None,
	BeforeValidator(_validate),
	PlainSerializer(encode, return_type=str | None),
]
