"""Pydantic schemas for the rating APIs."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.domain.rating.models import DPSBreakdown, EntryStatus, RatingHistoryEntry, RatingState, tier_for


class RatingEventRequest(BaseModel):
	# Validated by the engine so unknown types map to ``invalid_event``.
	type: str = Field(..., min_length=1, max_length=64)
	metadata: Dict[str, Any] = Field(default_factory=dict)


class BreakdownSchema(BaseModel):
	study_score: float = 0.0
	plan_score: float = 0.0
	budget_score: float = 0.0
	activity_score: float = 0.0
	discipline_penalty: float = 0.0
	relative_adjustment: float = 0.0
	total_dps: float = 0.0
	degraded: list[str] = Field(default_factory=list)

	@classmethod
	def from_domain(cls, breakdown: DPSBreakdown) -> "BreakdownSchema":
		return cls(
			study_score=breakdown.study_score,
			plan_score=breakdown.plan_score,
			budget_score=breakdown.budget_score,
			activity_score=breakdown.activity_score,
			discipline_penalty=breakdown.discipline_penalty,
			relative_adjustment=breakdown.relative_adjustment,
			total_dps=breakdown.total_dps,
			degraded=list(breakdown.degraded),
		)


class HistoryEntrySchema(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	id: str
	day: date = Field(..., alias="date")
	old_rating: int
	new_rating: int
	change: int
	dps: float
	breakdown: BreakdownSchema
	status: EntryStatus
	is_live: bool = False
	reason: str = ""
	created_at: Optional[datetime] = None

	@classmethod
	def from_domain(cls, entry: RatingHistoryEntry) -> "HistoryEntrySchema":
		return cls(
			id=entry.id,
			day=entry.day,
			old_rating=entry.old_rating,
			new_rating=entry.new_rating,
			change=entry.change,
			dps=entry.dps,
			breakdown=BreakdownSchema.from_domain(entry.breakdown),
			status=entry.status,
			is_live=entry.is_live,
			reason=entry.reason,
			created_at=entry.created_at,
		)


class RatingStateSchema(BaseModel):
	current_rating: int
	tier: str
	tier_color: str
	today_delta: int
	today_dps: BreakdownSchema
	live_entry: Optional[HistoryEntrySchema] = None
	base_rating: int
	finalized_days: list[date] = Field(default_factory=list)

	@classmethod
	def from_domain(cls, state: RatingState) -> "RatingStateSchema":
		return cls(
			current_rating=state.current_rating,
			tier=state.tier,
			tier_color=state.tier_color,
			today_delta=state.today_delta,
			today_dps=BreakdownSchema.from_domain(state.today_dps),
			live_entry=HistoryEntrySchema.from_domain(state.live_entry) if state.live_entry else None,
			base_rating=state.base_rating,
			finalized_days=list(state.finalized_days),
		)


class RatingHistoryResponse(BaseModel):
	current_rating: int
	tier: str
	tier_color: str
	items: list[HistoryEntrySchema]
	live_entry: Optional[HistoryEntrySchema] = None

	@classmethod
	def build(cls, state: RatingState, entries: list[RatingHistoryEntry]) -> "RatingHistoryResponse":
		tier = tier_for(state.current_rating)
		return cls(
			current_rating=state.current_rating,
			tier=tier.name,
			tier_color=tier.color,
			items=[HistoryEntrySchema.from_domain(entry) for entry in entries],
			live_entry=HistoryEntrySchema.from_domain(state.live_entry) if state.live_entry else None,
		)


class FinalizeResponse(BaseModel):
	user_id: str
	finalized: list[date] = Field(default_factory=list)
	entries: list[HistoryEntrySchema] = Field(default_factory=list)
	elapsed_ms: Optional[float] = None
