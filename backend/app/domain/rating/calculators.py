"""Score calculators turning one day's raw signals into bounded component scores."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, tzinfo
from typing import Iterable, Optional, Sequence

from app.domain.rating import policy
from app.domain.rating.exceptions import DataSourceUnavailable
from app.domain.rating.models import (
	ActivitySignal,
	BudgetSignal,
	ComponentScores,
	RatingComponent,
	TaskSignal,
)
from app.domain.rating.signals import PostgresSignalSource
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)


def _bounded(value: float, bounds: tuple[float, float]) -> float:
	return round(policy.clamp(value, bounds), policy.COMPONENT_PRECISION)


def study_score(minutes: float, goal_hours: float) -> float:
	"""Full marks at the goal; 0 minutes is -30 and half the goal is neutral."""
	goal_minutes = (goal_hours or policy.DEFAULT_STUDY_GOAL_HOURS) * 60
	if minutes >= goal_minutes:
		return _bounded(policy.STUDY_MAX_SCORE, policy.STUDY_BOUNDS)
	ratio = minutes / goal_minutes
	raw = policy.round_half_up(ratio * policy.STUDY_SCORE_SPAN - policy.STUDY_MAX_SCORE)
	return _bounded(raw, policy.STUDY_BOUNDS)


def plan_score(tasks: Iterable[TaskSignal], *, as_of: Optional[datetime] = None) -> float:
	"""Duration-weighted completion rate of the day's surviving tasks.

	With ``as_of`` (the end of the scored day) deletions and completions made
	later are ignored; without it the tasks' current state is used.
	"""
	if as_of is None:
		active = [task for task in tasks if not task.is_deleted]
		done = [task for task in active if task.is_completed]
	else:
		active = [task for task in tasks if task.active_at(as_of)]
		done = [task for task in active if task.completed_by(as_of)]
	if not active:
		return 0.0
	total = sum(task.estimated_duration or policy.DEFAULT_TASK_MINUTES for task in active)
	completed = sum(task.estimated_duration or policy.DEFAULT_TASK_MINUTES for task in done)
	rate = completed / total if total > 0 else 0.0
	raw = policy.round_half_up(rate * policy.PLAN_SCORE_SPAN - policy.PLAN_SCORE_SPAN / 2)
	return _bounded(raw, policy.PLAN_BOUNDS)


def _creation_base(hour: int) -> float:
	for threshold, penalty in policy.CREATION_PENALTIES:
		if hour >= threshold:
			return penalty
	return 0.0


def discipline_penalty(
	tasks: Sequence[TaskSignal],
	*,
	window: tuple[datetime, datetime],
	tz: tzinfo,
) -> float:
	"""Sum of the day's negative planning actions.

	Penalties add up across the day without a per-event cap; only the
	aggregator's daily clamp bounds them.
	"""
	if not tasks:
		return policy.NO_PLAN_PENALTY
	start, end = window
	total = 0.0
	for task in tasks:
		weight = policy.task_weight(task.estimated_duration)
		total += _creation_base(policy.local_hour(task.created_at, tz)) * weight
		deleted_at = task.deleted_at
		if deleted_at is None or not (start <= deleted_at < end):
			continue
		if policy.local_hour(deleted_at, tz) >= policy.DELETE_CUTOFF_HOUR:
			total += policy.DELETE_PENALTY_AFTER_CUTOFF * weight
		else:
			total += policy.DELETE_PENALTY_BEFORE_CUTOFF * weight
	return round(total, policy.COMPONENT_PRECISION)


def activity_score(activities: Iterable[ActivitySignal]) -> float:
	"""Reward finished timers, penalise stopping early; over-runs are capped."""
	score = 0.0
	for activity in activities:
		if activity.planned_duration > 0:
			ratio = min(1.0, activity.duration / activity.planned_duration)
			if ratio < 1.0:
				score -= (1.0 - ratio) * policy.ACTIVITY_SHORTFALL_PENALTY
			else:
				score += policy.ACTIVITY_COMPLETE_BONUS
		else:
			score += policy.ACTIVITY_ADHOC_BONUS
	return _bounded(score, policy.ACTIVITY_BOUNDS)


def budget_score(budget: Optional[BudgetSignal], spent: float) -> float:
	if budget is None:
		return 0.0
	period_days = policy.BUDGET_PERIOD_DAYS.get(budget.period.upper(), 1)
	daily_limit = budget.amount / period_days
	if daily_limit > 0 and spent > daily_limit:
		over = (spent - daily_limit) / daily_limit
		raw = policy.round_half_up(policy.BUDGET_FULL_SCORE - over * policy.BUDGET_OVERSPEND_WEIGHT)
		return _bounded(raw, policy.BUDGET_BOUNDS)
	return _bounded(policy.BUDGET_FULL_SCORE, policy.BUDGET_BOUNDS)


class ScoreCalculator:
	"""Reads a user's signals for a day and scores each component.

	A component whose data source fails contributes a neutral zero and is
	reported in ``ComponentScores.degraded``; the rest of the day still scores.
	"""

	def __init__(self, source=None, *, tz: Optional[tzinfo] = None) -> None:
		self._source = source or PostgresSignalSource()
		self._tz = tz or settings.rating_zone()

	def _degrade(self, component: RatingComponent, user_id: str, day: date, exc: DataSourceUnavailable) -> None:
		logger.warning(
			"rating_component_degraded",
			extra={"component": component.value, "rating_user": user_id, "day": day.isoformat(), "reason": exc.detail},
		)
		obs_metrics.inc_rating_degraded(component.value)

	async def _study(self, user_id: str, day: date, window: tuple[datetime, datetime]) -> tuple[float, list[str]]:
		try:
			minutes = await self._source.fetch_study_minutes(user_id, *window)
			goal = await self._source.fetch_study_goal_hours(user_id)
		except DataSourceUnavailable as exc:
			self._degrade(RatingComponent.STUDY, user_id, day, exc)
			return 0.0, [RatingComponent.STUDY.value]
		return study_score(minutes, goal), []

	async def _planning(
		self, user_id: str, day: date, window: tuple[datetime, datetime]
	) -> tuple[float, float, list[str]]:
		try:
			tasks = await self._source.fetch_tasks(user_id, *window)
		except DataSourceUnavailable as exc:
			self._degrade(RatingComponent.PLAN, user_id, day, exc)
			return 0.0, 0.0, [RatingComponent.PLAN.value, RatingComponent.DISCIPLINE.value]
		return plan_score(tasks, as_of=window[1]), discipline_penalty(tasks, window=window, tz=self._tz), []

	async def _activity(self, user_id: str, day: date, window: tuple[datetime, datetime]) -> tuple[float, list[str]]:
		try:
			activities = await self._source.fetch_activities(user_id, *window)
		except DataSourceUnavailable as exc:
			self._degrade(RatingComponent.ACTIVITY, user_id, day, exc)
			return 0.0, [RatingComponent.ACTIVITY.value]
		return activity_score(activities), []

	async def _budget(self, user_id: str, day: date, window: tuple[datetime, datetime]) -> tuple[float, list[str]]:
		try:
			budget = await self._source.fetch_budget(user_id)
			spent = await self._source.fetch_spent(user_id, *window) if budget is not None else 0.0
		except DataSourceUnavailable as exc:
			self._degrade(RatingComponent.BUDGET, user_id, day, exc)
			return 0.0, [RatingComponent.BUDGET.value]
		return budget_score(budget, spent), []

	async def compute(self, user_id: str, day: date) -> ComponentScores:
		window = policy.day_window(day, self._tz)
		# Every fetch settles before an unexpected error is re-raised unchanged.
		results = await asyncio.gather(
			self._study(user_id, day, window),
			self._planning(user_id, day, window),
			self._activity(user_id, day, window),
			self._budget(user_id, day, window),
			return_exceptions=True,
		)
		for outcome in results:
			if isinstance(outcome, BaseException):
				raise outcome
		(study, study_deg), (plan, penalty, plan_deg), (activity, act_deg), (budget, budget_deg) = results
		return ComponentScores(
			study=study,
			plan=plan,
			budget=budget,
			activity=activity,
			discipline_penalty=penalty,
			degraded=tuple(study_deg + plan_deg + act_deg + budget_deg),
		)
