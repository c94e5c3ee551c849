# (c) Copyright Datacraft, 2026
"""WebAuthn API router for passkey registration and login."""
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from passkey_server import schema
from passkey_server.db.engine import get_db
from passkey_server.db.store import SqlPasskeyStore
from passkey_server.errors import (
	CredentialVerificationFailed,
	NotFoundError,
	PasskeyError,
	ProvisioningError,
	ValidationError,
	VerificationError,
	to_http_exception,
)
from passkey_server.utils import auth_response, get_app_settings
from .service import PasskeyService
from .sessions import SessionStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/passkey", tags=["Passkeys"])

REGISTRATION_HEADER = "Session-Key"
LOGIN_HEADER = "Login-Key"
SESSION_COOKIE = "sid"


def get_session_store(request: Request) -> SessionStore:
	return request.app.state.sessions


def get_passkey_service(
	request: Request,
	db: Session = Depends(get_db),
	sessions: SessionStore = Depends(get_session_store),
) -> PasskeyService:
	"""Get PasskeyService with relying party configuration."""
	settings = get_app_settings(request)
	return PasskeyService(
		store=SqlPasskeyStore(db),
		sessions=sessions,
		rp_id=settings.rp_id,
		rp_name=settings.webauthn_rp_name,
		origin=settings.origin,
		timeout=settings.webauthn_timeout,
	)


def _cleared_cookie() -> str:
	return f'{SESSION_COOKIE}=""; Max-Age=0; Path=/; SameSite=lax'


async def _read_body(request: Request) -> Any:
	try:
		return await request.json()
	except ValueError:
		return None


@router.post("/register/begin")
async def register_begin(
	request: schema.CeremonyBeginRequest,
	service: PasskeyService = Depends(get_passkey_service),
) -> JSONResponse:
	"""Begin passkey registration. The token is returned in ``Session-Key``."""
	try:
		options, token = service.begin_registration(request.email)
	except PasskeyError as e:
		raise to_http_exception(e) from e

	return JSONResponse(options, headers={REGISTRATION_HEADER: token})


@router.post("/register/finish")
async def register_finish(
	request: Request,
	session_key: Annotated[str | None, Header(alias=REGISTRATION_HEADER)] = None,
	service: PasskeyService = Depends(get_passkey_service),
) -> JSONResponse:
	"""Complete passkey registration."""
	if not session_key:
		logger.warning("Registration finish without Session-Key header")
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail=f"{REGISTRATION_HEADER} header is required",
		)

	payload = await _read_body(request)
	try:
		service.finish_registration(session_key, payload)
	except CredentialVerificationFailed as e:
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail=e.message,
			headers={"Set-Cookie": _cleared_cookie()},
		) from e
	except PasskeyError as e:
		raise to_http_exception(e) from e

	response = JSONResponse("Registration Success")
	response.delete_cookie(SESSION_COOKIE)
	return response


@router.post("/login/begin")
async def login_begin(
	request: schema.CeremonyBeginRequest,
	service: PasskeyService = Depends(get_passkey_service),
) -> JSONResponse:
	"""Begin passkey login. The token is returned in ``Login-Key``."""
	try:
		options, token = service.begin_login(request.email)
	except (ValidationError, ProvisioningError) as e:
		raise to_http_exception(e) from e
	except NotFoundError as e:
		raise to_http_exception(
			e,
			status_code=status.HTTP_401_UNAUTHORIZED,
			detail="Authentication failed",
		) from e

	return JSONResponse(options, headers={LOGIN_HEADER: token})


@router.post("/login/finish", response_model=schema.AuthResponse)
async def login_finish(
	request: Request,
	login_key: Annotated[str | None, Header(alias=LOGIN_HEADER)] = None,
	service: PasskeyService = Depends(get_passkey_service),
) -> schema.AuthResponse:
	"""Complete passkey login and issue an auth token."""
	if not login_key:
		logger.warning("Login finish without Login-Key header")
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail=f"{LOGIN_HEADER} header is required",
		)

	payload = await _read_body(request)
	try:
		result = service.finish_login(login_key, payload)
	except VerificationError as e:
		raise to_http_exception(e, detail="Authentication failed") from e
	except PasskeyError as e:
		raise to_http_exception(e) from e

	return auth_response(result.user, "passkeys", get_app_settings(request))
