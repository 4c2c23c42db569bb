"""Observability bootstrap: JSON logging plus request metrics middleware."""

from __future__ import annotations

from fastapi import FastAPI

from app.obs import logging as obs_logging
from app.obs import middleware
from app.settings import settings


def init(app: FastAPI) -> None:
	if not settings.obs_enabled or getattr(app.state, "obs_installed", False):
		return
	obs_logging.configure_logging()
	middleware.install(app)
	app.state.obs_installed = True


__all__ = ["init"]
