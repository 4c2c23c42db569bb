"""FastAPI routes for the daily performance rating."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.domain.rating.models import RatingEvent
from app.domain.rating.schemas import (
	FinalizeResponse,
	HistoryEntrySchema,
	RatingEventRequest,
	RatingHistoryResponse,
	RatingStateSchema,
)
from app.domain.rating.service import get_engine
from app.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/rating", tags=["rating"])


@router.post("/events", response_model=RatingStateSchema)
async def record_event_endpoint(
	payload: RatingEventRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> RatingStateSchema:
	event = RatingEvent.build(payload.type, auth_user.id, payload.metadata)
	state = await get_engine().process_event(event)
	return RatingStateSchema.from_domain(state)


@router.get("/state", response_model=RatingStateSchema)
async def rating_state_endpoint(auth_user: AuthenticatedUser = Depends(get_current_user)) -> RatingStateSchema:
	state = await get_engine().get_state(auth_user.id)
	return RatingStateSchema.from_domain(state)


@router.get("/history", response_model=RatingHistoryResponse)
async def rating_history_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	limit: Optional[int] = Query(default=None, ge=1, le=1000),
) -> RatingHistoryResponse:
	state, entries = await get_engine().get_history(auth_user.id, limit=limit)
	return RatingHistoryResponse.build(state, entries)


@router.post("/finalize", response_model=FinalizeResponse)
async def finalize_endpoint(auth_user: AuthenticatedUser = Depends(get_current_user)) -> FinalizeResponse:
	locked = await get_engine().check_and_finalize_past_days(auth_user.id)
	return FinalizeResponse(
		user_id=auth_user.id,
		finalized=[entry.day for entry in locked],
		entries=[HistoryEntrySchema.from_domain(entry) for entry in locked],
	)
