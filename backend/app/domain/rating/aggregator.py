"""Combines component scores into a DPS and applies it to a baseline rating."""

from __future__ import annotations

from dataclasses import dataclass

from app.domain.rating import policy
from app.domain.rating.models import ComponentScores, DPSBreakdown, DPSResult
from app.settings import settings


@dataclass(frozen=True, slots=True)
class RatingBounds:
	base: int = 1000
	floor: int = 0
	ceiling: int = 4000
	max_daily_change: int = 100
	scaling_factor: float = 1.0

	@classmethod
	def from_settings(cls) -> "RatingBounds":
		return cls(
			base=settings.rating_base,
			floor=settings.rating_floor,
			ceiling=settings.rating_ceiling,
			max_daily_change=settings.rating_max_daily_change,
			scaling_factor=settings.rating_scaling_factor,
		)


def relative_adjustment(raw_dps: float, old_rating: int) -> float:
	"""Damp gains above the reference band and losses below it.

	Returns the signed amount to add to ``raw_dps``; zero inside the band or
	when the DPS already moves the rating toward the band.
	"""
	low, high = policy.REFERENCE_BAND
	if old_rating >= high and raw_dps > 0:
		distance = old_rating - high
	elif old_rating < low and raw_dps < 0:
		distance = low - old_rating
	else:
		return 0.0
	factor = min(policy.MAX_DAMPING, distance / policy.DAMPING_SPAN)
	return float(policy.round_half_up(-raw_dps * factor))


def aggregate(scores: ComponentScores, old_rating: int, bounds: RatingBounds | None = None) -> DPSResult:
	bounds = bounds or RatingBounds.from_settings()
	raw = (
		scores.study * policy.W_STUDY
		+ scores.plan * policy.W_PLAN
		+ scores.budget * policy.W_BUDGET
		+ scores.activity * policy.W_ACTIVITY
		+ scores.discipline_penalty
	)
	raw = policy.clamp(raw, policy.RAW_DPS_BOUNDS)
	adjustment = relative_adjustment(raw, old_rating)
	total = round(raw + adjustment, policy.COMPONENT_PRECISION)

	change = policy.round_half_up(total * bounds.scaling_factor)
	change = int(policy.clamp(change, (-bounds.max_daily_change, bounds.max_daily_change)))
	new_rating = int(policy.clamp(old_rating + change, (bounds.floor, bounds.ceiling)))

	breakdown = DPSBreakdown(
		study_score=scores.study,
		plan_score=scores.plan,
		budget_score=scores.budget,
		activity_score=scores.activity,
		discipline_penalty=scores.discipline_penalty,
		relative_adjustment=adjustment,
		total_dps=total,
		degraded=scores.degraded,
	)
	return DPSResult(breakdown=breakdown, old_rating=old_rating, new_rating=new_rating)
