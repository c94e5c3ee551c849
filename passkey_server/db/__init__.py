# (c) Copyright Datacraft, 2026
"""Database module for passkey-server."""
from .orm import User, Credential, MfaChallenge
from .store import PasskeyStore, SqlPasskeyStore
from .base import Base

__all__ = [
	'Base',
	'User',
	'Credential',
	'MfaChallenge',
	'PasskeyStore',
	'SqlPasskeyStore',
]
