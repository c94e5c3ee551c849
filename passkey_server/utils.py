# (c) Copyright Datacraft, 2026
from datetime import datetime, timedelta, timezone

from fastapi import Request, HTTPException, status
from fastapi.security.utils import get_authorization_scheme_param
import jwt
from pydantic import ValidationError

from .config import Settings, get_settings
from .db.orm import User
from .schema import AuthMeta, AuthRecord, AuthResponse, TokenData


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def from_header(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    scheme, token = get_authorization_scheme_param(authorization)

    if not authorization or scheme.lower() != "bearer":
        return None

    return token


def from_cookie(request: Request) -> str | None:
    cookie_name = get_app_settings(request).cookie_name
    return request.cookies.get(cookie_name, None)


def get_token(request: Request) -> str | None:
    return from_cookie(request) or from_header(request)


def create_token(user: User, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.token_expire_minutes
    )
    payload = {"sub": user.id, "email": user.email, "exp": expire}
    return jwt.encode(
        payload,
        settings.secret_key,
        algorithm=settings.token_algorithm.value,
    )


def auth_response(
    user: User,
    auth_method: str,
    settings: Settings | None = None,
) -> AuthResponse:
    """Authenticated-session payload returned after a successful login."""
    return AuthResponse(
        token=create_token(user, settings),
        record=AuthRecord.model_validate(user),
        meta=AuthMeta(auth_method=auth_method),
    )


async def get_current_user_id(request: Request) -> str:
    """Extract current user ID from JWT token."""
    token = get_token(request)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    settings = get_app_settings(request)
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.token_algorithm.value],
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    try:
        token_data = TokenData(**payload)
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return token_data.sub
