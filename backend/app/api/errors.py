"""JSON error bodies that always carry the request id."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.request_id import get_request_id
from app.domain.rating.exceptions import RatingError


def _error(
    request: Request,
    status_code: int,
    detail: Any,
    *,
    headers: Optional[Mapping[str, str]] = None,
    **fields: Any,
) -> JSONResponse:
    body = {"detail": detail, **fields, "request_id": get_request_id(request)}
    return JSONResponse(status_code=status_code, content=body, headers=dict(headers) if headers else None)


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(request, exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(request, 422, "validation_error", errors=jsonable_encoder(exc.errors()))


async def _rating_error(request: Request, exc: RatingError) -> JSONResponse:
    return _error(request, exc.status_code, exc.detail)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(RatingError, _rating_error)
