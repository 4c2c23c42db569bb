"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import ops, rating
from app.api.errors import install_error_handlers
from app.api.request_id import RequestIdMiddleware
from app.domain.rating.sockets import RatingNamespace, set_namespace as set_rating_namespace
from app.infra import migrate, postgres
from app.infra.redis import redis_client
from app.obs import init as obs_init
from app.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if settings.rating_auto_migrate:
		applied = await migrate.apply_migrations(pool)
		logger.info("migrations_checked", extra={"applied": list(applied)})
	try:
		yield
	finally:
		await redis_client.close()
		await postgres.close_pool()


DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def cors_origins() -> list[str]:
	"""Configured origins; a wildcard is replaced because credentials are allowed."""
	origins = list(settings.cors_allow_origins)
	if not origins or "*" in origins:
		return list(DEV_ORIGINS) if settings.is_dev() else []
	return origins


app = FastAPI(title="DPS Rating Engine", lifespan=lifespan)
install_error_handlers(app)

allow_origins = cors_origins()
app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["GET", "POST"],
	allow_headers=["*"],
)

# Live deltas are pushed on the /rating namespace, to the user's room only.
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
rating_namespace = RatingNamespace()
sio.register_namespace(rating_namespace)
set_rating_namespace(rating_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)

obs_init(app)
# Added last so it runs first and the id is bound before access logging.
app.add_middleware(RequestIdMiddleware)

app.include_router(rating.router)
app.include_router(ops.router)
