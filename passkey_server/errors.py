# (c) Copyright Datacraft, 2026
"""Error taxonomy for passkey and TOTP ceremonies."""
from fastapi import HTTPException, status


class PasskeyError(Exception):
	"""Base error. ``message`` is safe to return to the client."""
	status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
	default_message: str = "Internal error"

	def __init__(self, message: str | None = None):
		self.message = message or self.default_message
		super().__init__(self.message)


class ValidationError(PasskeyError):
	"""Malformed or missing input. The client must correct and resend."""
	status_code = status.HTTP_400_BAD_REQUEST
	default_message = "Invalid request"


class InvalidEmail(ValidationError):
	default_message = "Valid email address is required"


class MalformedEncoding(ValidationError):
	default_message = "Malformed base64url value"


class InvalidCredentialData(ValidationError):
	default_message = "Invalid credential data"


class InvalidPasscodeFormat(ValidationError):
	default_message = "passcode must be 6 digits"


class NotFoundError(PasskeyError):
	"""Unknown user, MFA transaction or configuration."""
	status_code = status.HTTP_404_NOT_FOUND
	default_message = "Not found"


class UserNotFound(NotFoundError):
	default_message = "User not found"


class MfaRecordNotFound(NotFoundError):
	default_message = "Invalid authentication request"


class SecretNotConfigured(NotFoundError):
	default_message = "No TOTP configuration found. Please regenerate."


class NoCredentialsRegistered(NotFoundError):
	default_message = "No passkeys registered for this account"


class AuthorizationError(PasskeyError):
	status_code = status.HTTP_403_FORBIDDEN
	default_message = "Insufficient permissions to access this resource"


class VerificationError(PasskeyError):
	"""Cryptographic or passcode check failed."""
	status_code = status.HTTP_401_UNAUTHORIZED
	default_message = "Authentication failed"


class CredentialVerificationFailed(VerificationError):
	default_message = "Failed to verify credential"


class InvalidPasscode(VerificationError):
	default_message = "Invalid TOTP passcode"


class ProvisioningError(PasskeyError):
	"""Repository or generation failure, surfaced as a server error."""
	default_message = "Failed to process request"


class RepositoryError(ProvisioningError):
	default_message = "Storage failure"


class UserProvisioningFailed(ProvisioningError):
	default_message = "Failed to process user account"


class ChallengeGenerationFailed(ProvisioningError):
	default_message = "Failed to initialize ceremony"


class DuplicateCredential(ProvisioningError):
	status_code = status.HTTP_409_CONFLICT
	default_message = "Credential already registered"


class InvalidStoredSecret(ProvisioningError):
	default_message = "Invalid TOTP configuration"


class InvalidMfaRecord(ProvisioningError):
	default_message = "Invalid MFA configuration"


class SessionExpiredOrInvalid(PasskeyError):
	"""Ceremony token unknown, expired or already consumed."""
	status_code = status.HTTP_401_UNAUTHORIZED
	default_message = "Invalid or expired session"


def to_http_exception(
	exc: PasskeyError,
	status_code: int | None = None,
	detail: str | None = None,
) -> HTTPException:
	"""Translate a domain error into an HTTPException for the routers."""
	return HTTPException(
		status_code=status_code or exc.status_code,
		detail=detail or exc.message,
	)
