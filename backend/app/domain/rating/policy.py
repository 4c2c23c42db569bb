"""Policy constants and day-boundary helpers for the rating engine."""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional


# --- Component weights (DPS aggregation) ---
W_STUDY = 1.0
W_PLAN = 1.0
W_BUDGET = 1.0
W_ACTIVITY = 1.0

# --- Component bounds: no single signal may dominate the day ---
STUDY_BOUNDS = (-30.0, 30.0)
PLAN_BOUNDS = (-25.0, 25.0)
ACTIVITY_BOUNDS = (-30.0, 20.0)
BUDGET_BOUNDS = (-50.0, 20.0)
RAW_DPS_BOUNDS = (-100.0, 100.0)

# --- Planning ---
DEFAULT_TASK_MINUTES = 30
TASK_WEIGHT_BASELINE_MINUTES = 30  # a 30 min task weighs 1.0 in penalties
PLAN_SCORE_SPAN = 50.0  # 0% completion -> -25, 100% -> +25

# --- Study ---
DEFAULT_STUDY_GOAL_HOURS = 2.0
STUDY_MAX_SCORE = 30.0
STUDY_SCORE_SPAN = 60.0

# --- Activity timers ---
ACTIVITY_SHORTFALL_PENALTY = 10.0
ACTIVITY_COMPLETE_BONUS = 2.0
ACTIVITY_ADHOC_BONUS = 1.0

# --- Budget ---
BUDGET_FULL_SCORE = 20.0
BUDGET_OVERSPEND_WEIGHT = 50.0
BUDGET_PERIOD_DAYS = {"DAILY": 1, "WEEKLY": 7, "MONTHLY": 30}

# --- Discipline penalties ---
NO_PLAN_PENALTY = -50.0
# (hour at or after which the base applies, base penalty); checked top-down
CREATION_PENALTIES = (
	(21, -6.0),  # late night planning
	(9, -4.0),  # planning after the working day started
	(6, -2.0),  # planning after 6 AM
)
DELETE_CUTOFF_HOUR = 6
DELETE_PENALTY_AFTER_CUTOFF = -5.0
DELETE_PENALTY_BEFORE_CUTOFF = -2.0

# --- Relative adjustment ---
# Gains above the band and losses below it are damped proportionally to the
# distance from the band.
REFERENCE_BAND = (1000, 1400)
DAMPING_SPAN = 1000.0
MAX_DAMPING = 0.5

COMPONENT_PRECISION = 2


def clamp(value: float, bounds: tuple[float, float]) -> float:
	low, high = bounds
	return max(low, min(high, value))


def round_half_up(value: float) -> int:
	"""Round halves toward positive infinity (2.5 -> 3, -2.5 -> -2)."""
	return int(math.floor(value + 0.5))


def task_weight(estimated_duration: Optional[int]) -> float:
	minutes = estimated_duration or DEFAULT_TASK_MINUTES
	return minutes / TASK_WEIGHT_BASELINE_MINUTES


# --- Day boundaries ----------------------------------------------------------


def local_today(now: datetime, tz: tzinfo) -> date:
	"""Calendar day of ``now`` in the canonical rating timezone."""
	if now.tzinfo is None:
		now = now.replace(tzinfo=timezone.utc)
	return now.astimezone(tz).date()


def day_window(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
	"""Half-open ``[start, end)`` window covering ``day`` in ``tz``."""
	start = datetime.combine(day, time.min, tzinfo=tz)
	end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
	return start, end


def local_hour(moment: datetime, tz: tzinfo) -> int:
	if moment.tzinfo is None:
		moment = moment.replace(tzinfo=timezone.utc)
	return moment.astimezone(tz).hour


def days_between(start: date, end: date) -> list[date]:
	"""Every day from ``start`` up to but excluding ``end``."""
	span = (end - start).days
	return [start + timedelta(days=offset) for offset in range(max(span, 0))]
