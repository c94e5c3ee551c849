# (c) Copyright Datacraft, 2026
"""Record store used by the ceremony and TOTP services."""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from passkey_server.errors import DuplicateCredential, RepositoryError
from .orm import Credential, MfaChallenge, User

logger = logging.getLogger(__name__)


class PasskeyStore:
	"""Capabilities the services need from the record store.

	Implementations raise :class:`RepositoryError` (or a subclass) on storage
	failures and never retry.
	"""

	def get_or_create_user(self, email: str) -> User:
		raise NotImplementedError("Implement in db layer")

	def get_user(self, user_id: str) -> User | None:
		raise NotImplementedError("Implement in db layer")

	def get_user_by_email(self, email: str) -> User | None:
		raise NotImplementedError("Implement in db layer")

	def list_credentials(self, user: User) -> list[Credential]:
		raise NotImplementedError("Implement in db layer")

	def add_credential(self, user: User, credential: Credential) -> Credential:
		raise NotImplementedError("Implement in db layer")

	def update_credential(self, credential: Credential) -> Credential:
		raise NotImplementedError("Implement in db layer")

	def get_mfa(self, mfa_id: str) -> MfaChallenge | None:
		raise NotImplementedError("Implement in db layer")

	def save_totp_secret(self, user: User, secret: str) -> User:
		raise NotImplementedError("Implement in db layer")

	def can_view_user(self, user: User, actor_id: str | None) -> bool:
		raise NotImplementedError("Implement in db layer")


class SqlPasskeyStore(PasskeyStore):
	"""SQLAlchemy implementation of :class:`PasskeyStore`."""

	def __init__(self, db: Session):
		self.db = db

	def get_or_create_user(self, email: str) -> User:
		user = self.get_user_by_email(email)
		if user is not None:
			return user

		logger.debug(f"Creating user for {email}")
		user = User(email=email, name=email)
		try:
			self.db.add(user)
			self.db.commit()
		except IntegrityError:
			# concurrent begin for the same email created it first
			self.db.rollback()
			user = self.get_user_by_email(email)
			if user is None:
				raise RepositoryError()
			return user
		except SQLAlchemyError as e:
			self.db.rollback()
			raise RepositoryError() from e

		return user

	def get_user(self, user_id: str) -> User | None:
		try:
			return self.db.get(User, user_id)
		except SQLAlchemyError as e:
			raise RepositoryError() from e

	def get_user_by_email(self, email: str) -> User | None:
		try:
			return self.db.scalar(select(User).where(User.email == email))
		except SQLAlchemyError as e:
			raise RepositoryError() from e

	def list_credentials(self, user: User) -> list[Credential]:
		stmt = select(Credential).where(
			Credential.user_id == user.id
		).order_by(Credential.created_at)
		try:
			return list(self.db.scalars(stmt))
		except SQLAlchemyError as e:
			raise RepositoryError() from e

	def add_credential(self, user: User, credential: Credential) -> Credential:
		credential.user_id = user.id
		try:
			self.db.add(credential)
			self.db.commit()
		except IntegrityError as e:
			self.db.rollback()
			raise DuplicateCredential() from e
		except SQLAlchemyError as e:
			self.db.rollback()
			raise RepositoryError() from e

		self.db.refresh(credential)
		return credential

	def update_credential(self, credential: Credential) -> Credential:
		stored = self.find_credential(credential.credential_id)
		if stored is None:
			raise RepositoryError(f"Credential {credential.id} not found")

		stored.sign_count = credential.sign_count
		stored.backup_eligible = credential.backup_eligible
		stored.backup_state = credential.backup_state
		stored.last_used_at = credential.last_used_at or datetime.now(timezone.utc)
		try:
			self.db.commit()
		except SQLAlchemyError as e:
			self.db.rollback()
			raise RepositoryError() from e

		return stored

	def find_credential(self, credential_id: str) -> Credential | None:
		try:
			return self.db.scalar(
				select(Credential).where(Credential.credential_id == credential_id)
			)
		except SQLAlchemyError as e:
			raise RepositoryError() from e

	def get_mfa(self, mfa_id: str) -> MfaChallenge | None:
		try:
			return self.db.get(MfaChallenge, mfa_id)
		except SQLAlchemyError as e:
			raise RepositoryError() from e

	def save_totp_secret(self, user: User, secret: str) -> User:
		user.totp_secret = secret
		user.multi_factor_auth = True
		try:
			self.db.add(user)
			self.db.commit()
		except SQLAlchemyError as e:
			self.db.rollback()
			raise RepositoryError() from e

		return user

	def can_view_user(self, user: User, actor_id: str | None) -> bool:
		"""Users may view their own record; superusers may view any."""
		if actor_id is None:
			return False
		if actor_id == user.id:
			return True

		actor = self.get_user(actor_id)
		return actor is not None and actor.is_superuser
