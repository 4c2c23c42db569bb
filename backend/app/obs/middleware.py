"""Per-request metrics and access logging."""

from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from app.obs import logging as obs_logging
from app.obs import metrics
from app.settings import settings

_access_log = obs_logging.get_logger("dps.http")


def route_template(request: Request) -> str:
	"""Label requests by route pattern so user ids stay out of metric labels."""
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not settings.obs_enabled:
			return await call_next(request)

		tokens = obs_logging.bind_context(
			request_id=getattr(request.state, "request_id", None),
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
			return response
		except Exception:
			_access_log.exception("http_request_error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			template = route_template(request)
			metrics.observe_request(template, request.method, status_code, elapsed)
			_access_log.info(
				"http_request",
				extra={
					"method": request.method,
					"route": template,
					"status": status_code,
					"latency_ms": round(elapsed * 1000, 3),
				},
			)
			obs_logging.reset_context(tokens)


def install(app) -> None:
	app.add_middleware(ObservabilityMiddleware)
