# (c) Copyright Datacraft, 2026
"""Application factory.

Usage:
	uvicorn passkey_server.main:app --port 8090
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .db.base import Base
from .db.engine import create_db_engine, create_session_factory
from .mfa import router as totp_router
from .webauthn import router as passkey_router
from .webauthn.router import LOGIN_HEADER, REGISTRATION_HEADER
from .webauthn.sessions import SessionStore

logger = logging.getLogger(__name__)


async def sweep_sessions(sessions: SessionStore, interval: int) -> None:
	"""Periodically drop abandoned ceremony sessions."""
	while True:
		await asyncio.sleep(interval)
		sessions.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
	settings: Settings = app.state.settings
	Base.metadata.create_all(app.state.engine)
	logger.info(f"Passkey server starting for origin {settings.origin}")

	sweeper = None
	if settings.session_ttl_seconds and settings.session_sweep_interval:
		sweeper = asyncio.create_task(
			sweep_sessions(app.state.sessions, settings.session_sweep_interval)
		)

	yield

	if sweeper is not None:
		sweeper.cancel()
		with suppress(asyncio.CancelledError):
			await sweeper
	app.state.engine.dispose()
	logger.info("Passkey server stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
	settings = settings or get_settings()

	logging.basicConfig(
		level=getattr(logging, settings.log_level.upper(), logging.INFO),
		format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
	)

	app = FastAPI(title="Passkey Server", lifespan=lifespan)
	app.state.settings = settings
	app.state.sessions = SessionStore(ttl_seconds=settings.session_ttl_seconds)
	app.state.engine = create_db_engine(settings.db_url)
	app.state.session_factory = create_session_factory(app.state.engine)

	if settings.cors_origins:
		app.add_middleware(
			CORSMiddleware,
			allow_origins=settings.cors_origins,
			allow_credentials=True,
			allow_methods=["*"],
			allow_headers=["*"],
			expose_headers=[REGISTRATION_HEADER, LOGIN_HEADER],
		)

	app.include_router(passkey_router)
	app.include_router(totp_router)
	return app


app = create_app()
