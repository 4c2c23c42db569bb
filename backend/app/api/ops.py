"""Health probes, Prometheus exposition and operator-only rating controls."""

from __future__ import annotations

import hmac
import time
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.domain.rating.schemas import FinalizeResponse, HistoryEntrySchema
from app.domain.rating.service import get_engine
from app.obs import health
from app.settings import settings

router = APIRouter(prefix="", tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> str:
	if x_admin_token:
		return x_admin_token
	scheme, _, value = (authorization or "").partition(" ")
	return value.strip() if scheme.lower() == "bearer" else ""


def _check_admin(presented: str) -> None:
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if not hmac.compare_digest(presented.encode(), expected.encode()):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_admin(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	_check_admin(_presented_token(x_admin_token, authorization))


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if not settings.obs_metrics_public:
		_check_admin(_presented_token(x_admin_token, authorization))


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready() -> Response:
	status_code, payload = await health.readiness()
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


@router.post("/ops/rating/finalize/{user_id}", response_model=FinalizeResponse)
async def finalize_user_days(user_id: uuid.UUID, _: None = Depends(require_admin)) -> FinalizeResponse:
	"""Lock a user's elapsed days without waiting for their next request."""
	start = time.perf_counter()
	locked = await get_engine().check_and_finalize_past_days(str(user_id))
	return FinalizeResponse(
		user_id=str(user_id),
		finalized=[entry.day for entry in locked],
		entries=[HistoryEntrySchema.from_domain(entry) for entry in locked],
		elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
	)
