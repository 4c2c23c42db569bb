"""Request id middleware and lookup helper.

The request id middleware stores the id on ``request.state``; the
observability middleware also binds it into the logging context.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    """Return the current request id if bound, else a default."""
    if request is not None:
        rid = getattr(request.state, REQUEST_ID_ATTR, None)
        if rid:
            return str(rid)
    return obs_logging.current_request_id() or default


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's ``X-Request-Id`` or mint one, and echo it back."""

    header = "X-Request-Id"

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        rid = request.headers.get(self.header) or uuid.uuid4().hex
        setattr(request.state, REQUEST_ID_ATTR, rid)
        response = await call_next(request)
        response.headers.setdefault(self.header, rid)
        return response
