# (c) Copyright Datacraft, 2026
"""TOTP multi-factor authentication module."""

from .totp import TOTPManager
from .service import TOTPService, TOTPEnrollment
from .router import router

__all__ = [
	"TOTPManager",
	"TOTPService",
	"TOTPEnrollment",
	"router",
]
