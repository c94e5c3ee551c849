from pydantic import BaseModel, ConfigDict, Field

from passkey_server.codec import URLEncodedBase64


class TokenData(BaseModel):
    sub: str  # same as `user_id`
    email: str

    model_config = ConfigDict(from_attributes=True)


# (c) Copyright Datacraft, 2026
# Passkey and TOTP Schemas


class CeremonyBeginRequest(BaseModel):
    """Request to begin a registration or login ceremony."""
    email: str = ""


class PublicKeyCredential(BaseModel):
    """The part of a PublicKeyCredential this service reads directly.

    The full object is handed to the WebAuthn verifier as-is.
    """
    raw_id: URLEncodedBase64 = Field(alias="rawId")

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class TOTPLoginRequest(BaseModel):
    """TOTP step-up login."""
    mfa_id: str = Field(default="", alias="mfaId")
    passcode: str = ""

    model_config = ConfigDict(populate_by_name=True)


class AuthRecord(BaseModel):
    """User record returned with an auth token."""
    id: str
    email: str
    name: str = ""
    multi_factor_auth: bool = Field(default=False, serialization_alias="multiFactorAuth")

    model_config = ConfigDict(from_attributes=True)


class AuthMeta(BaseModel):
    auth_method: str = Field(serialization_alias="authMethod")


class AuthResponse(BaseModel):
    """Authenticated-session payload shared by passkey and TOTP login."""
    token: str
    record: AuthRecord
    meta: AuthMeta
