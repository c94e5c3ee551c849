# (c) Copyright Datacraft, 2026
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, Engine
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.orm import sessionmaker, Session as SQLAlchemySession


def create_db_engine(db_url: str) -> Engine:
	url = make_url(db_url)
	if url.get_backend_name() != "sqlite":
		return create_engine(url, poolclass=NullPool)

	# sessions are opened and closed on different worker threads
	connect_args = {"check_same_thread": False}
	if url.database in (None, "", ":memory:"):
		# an in-memory database lives only as long as its one connection
		return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
	return create_engine(url, connect_args=connect_args, poolclass=NullPool)


def create_session_factory(engine: Engine) -> sessionmaker:
	return sessionmaker(engine, expire_on_commit=False)


def get_db(request: Request) -> Generator[SQLAlchemySession, None, None]:
	"""FastAPI dependency for database sessions bound to the app's engine."""
	db = request.app.state.session_factory()
	try:
		yield db
	finally:
		db.close()
