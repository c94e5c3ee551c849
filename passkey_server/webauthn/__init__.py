# (c) Copyright Datacraft, 2026
"""WebAuthn/FIDO2 Passkey authentication module."""

from .service import PasskeyService, LoginResult
from .sessions import SessionStore, CeremonySession, CeremonyKind
from .router import router

__all__ = [
	"PasskeyService",
	"LoginResult",
	"SessionStore",
	"CeremonySession",
	"CeremonyKind",
	"router",
]
