import logging

from functools import lru_cache
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Algs(str, Enum):
    HS256 = "HS256"
    HS384 = "HS384"
    HS512 = "HS512"


class Settings(BaseSettings):
    secret_key: str
    totp_issuer: str = Field(min_length=1, description="Issuer shown in authenticator apps")
    db_url: str = "sqlite:///./passkeys.db"

    token_algorithm: Algs = Algs.HS256
    token_expire_minutes: int = Field(gt=0, default=1360)
    cookie_name: str = "access_token"

    # Relying party
    proto: str = "https"
    host: str = "localhost"
    port: str = Field(default="", description="Appended to the origin in dev, e.g. ':8090'")
    is_dev_env: bool = False
    rp_origin: str | None = Field(default=None, description="Overrides the derived origin")
    webauthn_rp_name: str = Field(default="Passkey Server", description="Relying Party display name")
    webauthn_timeout: int = Field(default=60000, description="WebAuthn timeout in ms")

    # Ceremony sessions
    session_ttl_seconds: int = Field(default=300, ge=0, description="0 disables expiry")
    session_sweep_interval: int = Field(default=60, ge=0, description="0 disables the sweep task")

    cors_origins: list[str] = []
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix='pk_',
        env_file='.env',
        extra='ignore',
    )

    @property
    def rp_id(self) -> str:
        return self.host

    @property
    def origin(self) -> str:
        if self.rp_origin:
            return self.rp_origin
        if self.is_dev_env:
            return f"{self.proto}://{self.host}{self.port}"
        return f"{self.proto}://{self.host}"


@lru_cache()
def get_settings():
    return Settings()
