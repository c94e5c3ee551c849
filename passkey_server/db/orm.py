# (c) Copyright Datacraft, 2026
"""Record models for users, passkey credentials and MFA transactions."""
import secrets
import string
from datetime import datetime, timezone
from typing import List

from sqlalchemy import (
	String, ForeignKey, Boolean, Integer, JSON, DateTime, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

RECORD_ID_LENGTH = 15
_RECORD_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
	return datetime.now(timezone.utc)


def new_record_id() -> str:
	"""15 character lowercase alphanumeric record id."""
	return "".join(
		secrets.choice(_RECORD_ID_ALPHABET) for _ in range(RECORD_ID_LENGTH)
	)


class User(Base):
	__tablename__ = "users"

	id: Mapped[str] = mapped_column(
		String(RECORD_ID_LENGTH), primary_key=True, default=new_record_id
	)
	email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
	name: Mapped[str] = mapped_column(String(255), default="")
	totp_secret: Mapped[str | None] = mapped_column(String(128), nullable=True)
	multi_factor_auth: Mapped[bool] = mapped_column(Boolean, default=False)
	is_superuser: Mapped[bool] = mapped_column(Boolean, default=False)
	created_at: Mapped[datetime] = mapped_column(
		DateTime(timezone=True), server_default=func.now()
	)

	credentials: Mapped[List["Credential"]] = relationship(
		back_populates="user", order_by="Credential.created_at"
	)

	@property
	def display_name(self) -> str:
		return self.name or self.email

	def __repr__(self):
		return f"User(id={self.id}, email={self.email})"


class Credential(Base):
	"""One registered authenticator. Binary fields hold base64url text."""

	__tablename__ = "credentials"

	id: Mapped[str] = mapped_column(
		String(RECORD_ID_LENGTH), primary_key=True, default=new_record_id
	)
	user_id: Mapped[str] = mapped_column(
		ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
	)
	credential_id: Mapped[str] = mapped_column(
		String(1366), nullable=False, unique=True
	)
	public_key: Mapped[str] = mapped_column(String, nullable=False)
	attestation_type: Mapped[str] = mapped_column(String(32), default="none")
	aaguid: Mapped[str | None] = mapped_column(String(32), nullable=True)
	sign_count: Mapped[int] = mapped_column(Integer, default=0)
	credential_type: Mapped[str] = mapped_column(String(32), default="public-key")
	transports: Mapped[list[str]] = mapped_column(JSON, default=list)
	backup_eligible: Mapped[bool] = mapped_column(Boolean, default=False)
	backup_state: Mapped[bool] = mapped_column(Boolean, default=False)
	created_at: Mapped[datetime] = mapped_column(
		DateTime(timezone=True), default=utc_now
	)
	last_used_at: Mapped[datetime | None] = mapped_column(
		DateTime(timezone=True), nullable=True
	)

	user: Mapped["User"] = relationship(back_populates="credentials")

	def __repr__(self):
		return f"Credential(id={self.id}, user_id={self.user_id})"


class MfaChallenge(Base):
	"""Short-lived MFA transaction pointing at the user being authenticated.

	Owned by the primary login flow; this service only reads it.
	"""

	__tablename__ = "_mfas"

	id: Mapped[str] = mapped_column(
		String(RECORD_ID_LENGTH), primary_key=True, default=new_record_id
	)
	record_ref: Mapped[str | None] = mapped_column(String(RECORD_ID_LENGTH), nullable=True)
	collection_ref: Mapped[str] = mapped_column(String(64), default="users")
	method: Mapped[str] = mapped_column(String(32), default="password")
	created_at: Mapped[datetime] = mapped_column(
		DateTime(timezone=True), default=utc_now
	)
