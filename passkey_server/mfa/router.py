# (c) Copyright Datacraft, 2026
"""TOTP enrollment and login API router."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from passkey_server import schema
from passkey_server.db.engine import get_db
from passkey_server.db.orm import RECORD_ID_LENGTH
from passkey_server.db.store import SqlPasskeyStore
from passkey_server.errors import (
	NotFoundError,
	PasskeyError,
	ValidationError,
	VerificationError,
	to_http_exception,
)
from passkey_server.utils import auth_response, get_app_settings, get_current_user_id
from .service import TOTPService
from .totp import TOTPManager

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("passkey_server.security")
router = APIRouter(prefix="/api/totp", tags=["TOTP"])

_BOOL_VALUES = {
	"1": True, "t": True, "true": True,
	"0": False, "f": False, "false": False,
}


def get_totp_service(
	request: Request,
	db: Session = Depends(get_db),
) -> TOTPService:
	return TOTPService(
		store=SqlPasskeyStore(db),
		manager=TOTPManager(issuer_name=get_app_settings(request).totp_issuer),
	)


@router.get("/qr", response_class=Response)
async def get_qr(
	userId: str = "",
	regenerate: str = "false",
	service: TOTPService = Depends(get_totp_service),
	actor_id: str = Depends(get_current_user_id),
) -> Response:
	"""Enrollment QR code for a user, optionally rotating the secret."""
	if not userId:
		logger.warning("TOTP QR: Missing userId parameter")
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail="userId parameter is required",
		)

	if len(userId) < RECORD_ID_LENGTH:
		logger.warning(f"TOTP QR: Invalid userId format: {userId}")
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail="Invalid userId format",
		)

	parsed = _BOOL_VALUES.get(regenerate.lower())
	if parsed is None:
		logger.warning(f"TOTP QR: Invalid regenerate parameter: {regenerate}")
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail="regenerate parameter must be true or false",
		)

	try:
		user = service.store.get_user(userId)
		if user is None:
			logger.warning(f"TOTP QR: User not found for ID: {userId}")
			raise HTTPException(
				status_code=status.HTTP_404_NOT_FOUND,
				detail="User not found",
			)

		if not service.store.can_view_user(user, actor_id):
			security_logger.warning(f"TOTP QR: Access denied to user {userId} for {actor_id}")
			raise HTTPException(
				status_code=status.HTTP_403_FORBIDDEN,
				detail="Insufficient permissions to access this resource",
			)

		enrollment = service.provision_or_fetch(user, regenerate=parsed)
	except NotFoundError as e:
		raise to_http_exception(e, status_code=status.HTTP_400_BAD_REQUEST) from e
	except PasskeyError as e:
		raise to_http_exception(e) from e

	return Response(content=enrollment.image, media_type="image/png")


@router.post("/login", response_model=schema.AuthResponse)
async def totp_login(
	data: schema.TOTPLoginRequest,
	request: Request,
	service: TOTPService = Depends(get_totp_service),
) -> schema.AuthResponse:
	"""Validate a TOTP passcode for a pending MFA transaction."""
	if not data.mfa_id:
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail="mfaId is required",
		)
	if not data.passcode:
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail="passcode is required",
		)

	try:
		user = service.login(data.mfa_id, data.passcode)
	except ValidationError as e:
		raise to_http_exception(e) from e
	except (NotFoundError, VerificationError) as e:
		raise to_http_exception(e, status_code=status.HTTP_401_UNAUTHORIZED) from e
	except PasskeyError as e:
		raise to_http_exception(e) from e

	return auth_response(user, "totp", get_app_settings(request))
