# (c) Copyright Datacraft, 2026
"""In-memory, single-use storage of in-flight ceremony state."""
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class CeremonyKind(str, Enum):
	REGISTRATION = "registration"
	LOGIN = "login"


@dataclass
class CeremonySession:
	"""State produced by a Begin call and consumed by the matching Finish."""
	kind: CeremonyKind
	challenge: bytes
	email: str
	allowed_credential_ids: list[bytes] = field(default_factory=list)
	user_verification: str = "preferred"
	created_at: float = field(default_factory=time.monotonic)


class SessionStore:
	"""Token -> ceremony state map, namespaced per ceremony kind.

	``consume`` is atomic: for a given token at most one caller gets the
	session back. Entries older than ``ttl_seconds`` are treated as missing;
	``sweep`` drops them to bound memory. Nothing survives a restart.
	"""

	def __init__(self, ttl_seconds: int = 300):
		self.ttl_seconds = ttl_seconds
		self._sessions: dict[tuple[CeremonyKind, str], CeremonySession] = {}
		self._lock = threading.Lock()

	def create(self, kind: CeremonyKind, state: CeremonySession) -> str:
		"""Store ``state`` under a fresh 256-bit token and return the token."""
		with self._lock:
			token = secrets.token_urlsafe(TOKEN_BYTES)
			while (kind, token) in self._sessions:
				token = secrets.token_urlsafe(TOKEN_BYTES)
			self._sessions[(kind, token)] = state

		logger.debug(f"Created {kind.value} session for {state.email}")
		return token

	def consume(self, kind: CeremonyKind, token: str | None) -> CeremonySession | None:
		"""Remove and return the session, or None if unknown, used or expired."""
		if not token:
			return None

		with self._lock:
			state = self._sessions.pop((kind, token), None)

		if state is None:
			return None
		if self._expired(state, time.monotonic()):
			logger.debug(f"Dropped expired {kind.value} session for {state.email}")
			return None

		logger.debug(f"Consumed {kind.value} session for {state.email}")
		return state

	def invalidate(self, kind: CeremonyKind, token: str | None) -> None:
		if not token:
			return
		with self._lock:
			self._sessions.pop((kind, token), None)

	def sweep(self) -> int:
		"""Drop expired sessions. Returns how many were removed."""
		if not self.ttl_seconds:
			return 0

		now = time.monotonic()
		with self._lock:
			expired = [
				key for key, state in self._sessions.items()
				if self._expired(state, now)
			]
			for key in expired:
				del self._sessions[key]

		if expired:
			logger.debug(f"Swept {len(expired)} expired ceremony sessions")
		return len(expired)

	def _expired(self, state: CeremonySession, now: float) -> bool:
		return bool(self.ttl_seconds) and now - state.created_at > self.ttl_seconds

	def __len__(self) -> int:
		with self._lock:
			return len(self._sessions)
