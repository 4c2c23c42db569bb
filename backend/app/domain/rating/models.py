"""Domain models for the daily performance rating."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from app.domain.rating.exceptions import InvalidEvent

LIVE_ENTRY_ID = "LIVE"
BREAKDOWN_VERSION = 1


class RatingEventType(str, Enum):
	"""Closed set of events the engine accepts."""

	TASK_CREATE = "TASK_CREATE"
	TASK_COMPLETE = "TASK_COMPLETE"
	TASK_UNCOMPLETE = "TASK_UNCOMPLETE"
	TASK_DELETE = "TASK_DELETE"
	ACTIVITY_LOGGED = "ACTIVITY_LOGGED"
	EXPENSE_LOGGED = "EXPENSE_LOGGED"
	STUDY_LOGGED = "STUDY_LOGGED"
	DAY_FINALIZE = "DAY_FINALIZE"
	REFRESH = "REFRESH"

	@classmethod
	def parse(cls, raw: Any) -> "RatingEventType":
		if isinstance(raw, cls):
			return raw
		try:
			return cls(str(raw).strip().upper())
		except ValueError as exc:
			raise InvalidEvent(f"invalid_event:{raw}") from exc


class EntryStatus(str, Enum):
	LIVE = "LIVE"
	LOCKED = "LOCKED"


class RatingComponent(str, Enum):
	STUDY = "study"
	PLAN = "plan"
	BUDGET = "budget"
	ACTIVITY = "activity"
	DISCIPLINE = "discipline"


@dataclass(slots=True)
class RatingEvent:
	type: RatingEventType
	user_id: str
	metadata: dict[str, Any] = field(default_factory=dict)

	@classmethod
	def build(cls, type: Any, user_id: Any, metadata: Optional[Mapping[str, Any]] = None) -> "RatingEvent":
		return cls(type=RatingEventType.parse(type), user_id=str(user_id), metadata=dict(metadata or {}))


# --- Raw signals -------------------------------------------------------------


@dataclass(slots=True)
class TaskSignal:
	"""A task created on the scored day, deleted or not.

	The flags reflect the row as it is now. ``active_at`` and ``completed_by``
	answer the same questions as of a past instant, so a locked day is not
	changed by what happens to its tasks afterwards.
	"""

	estimated_duration: Optional[int]
	is_completed: bool
	created_at: datetime
	deleted_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None

	@property
	def is_deleted(self) -> bool:
		return self.deleted_at is not None

	def active_at(self, instant: datetime) -> bool:
		return self.deleted_at is None or self.deleted_at >= instant

	def completed_by(self, instant: datetime) -> bool:
		# Rows completed before completed_at existed fall back to the flag.
		if self.completed_at is not None:
			return self.completed_at < instant
		return self.is_completed


@dataclass(slots=True)
class ActivitySignal:
	duration: float
	planned_duration: float


@dataclass(slots=True)
class BudgetSignal:
	amount: float
	period: str


# --- Scores ------------------------------------------------------------------


@dataclass(slots=True)
class ComponentScores:
	"""Bounded per-component scores for one user and day."""

	study: float = 0.0
	plan: float = 0.0
	budget: float = 0.0
	activity: float = 0.0
	discipline_penalty: float = 0.0
	degraded: tuple[str, ...] = ()


@dataclass(slots=True)
class DPSBreakdown:
	study_score: float
	plan_score: float
	budget_score: float
	activity_score: float
	discipline_penalty: float
	relative_adjustment: float
	total_dps: float
	degraded: tuple[str, ...] = ()

	@classmethod
	def neutral(cls) -> "DPSBreakdown":
		return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

	def to_json(self) -> dict[str, Any]:
		"""Serialise for the JSONB column, tagged with the schema version."""
		return {
			"version": BREAKDOWN_VERSION,
			"study_score": self.study_score,
			"plan_score": self.plan_score,
			"budget_score": self.budget_score,
			"activity_score": self.activity_score,
			"discipline_penalty": self.discipline_penalty,
			"relative_adjustment": self.relative_adjustment,
			"total_dps": self.total_dps,
			"degraded": list(self.degraded),
		}

	@classmethod
	def from_json(cls, payload: Mapping[str, Any] | None) -> "DPSBreakdown":
		"""Decode a stored breakdown; unknown or missing keys read as neutral."""
		payload = payload or {}

		def _num(name: str) -> float:
			raw = payload.get(name, 0.0)
			try:
				return float(raw) if raw is not None else 0.0
			except (TypeError, ValueError):
				return 0.0

		return cls(
			study_score=_num("study_score"),
			plan_score=_num("plan_score"),
			budget_score=_num("budget_score"),
			activity_score=_num("activity_score"),
			discipline_penalty=_num("discipline_penalty"),
			relative_adjustment=_num("relative_adjustment"),
			total_dps=_num("total_dps"),
			degraded=tuple(str(item) for item in payload.get("degraded") or ()),
		)


@dataclass(slots=True)
class DPSResult:
	breakdown: DPSBreakdown
	old_rating: int
	new_rating: int

	@property
	def total_dps(self) -> float:
		return self.breakdown.total_dps

	@property
	def change(self) -> int:
		return self.new_rating - self.old_rating


# --- Ledger records ----------------------------------------------------------


@dataclass(slots=True)
class RatingHistoryEntry:
	id: str
	user_id: str
	day: date
	old_rating: int
	new_rating: int
	change: int
	dps: float
	breakdown: DPSBreakdown
	status: EntryStatus
	reason: str = ""
	created_at: Optional[datetime] = None

	@property
	def is_live(self) -> bool:
		return self.status is EntryStatus.LIVE


@dataclass(slots=True)
class UserRating:
	"""Rating fields owned by the user record."""

	user_id: str
	rating: int
	rank: str
	last_active_date: Optional[date]


@dataclass(slots=True)
class RatingState:
	current_rating: int
	tier: str
	tier_color: str
	today_delta: int
	today_dps: DPSBreakdown
	live_entry: Optional[RatingHistoryEntry]
	base_rating: int
	finalized_days: list[date] = field(default_factory=list)


# --- Tiers -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Tier:
	name: str
	min_rating: int
	color: str


TIERS: tuple[Tier, ...] = (
	Tier("Newbie", -(10**9), "#6b7280"),
	Tier("Beginner", 800, "#9ca3af"),
	Tier("Pupil", 1000, "#22c55e"),
	Tier("Specialist", 1200, "#06b6d4"),
	Tier("Expert", 1400, "#3b82f6"),
	Tier("Candidate Master", 1600, "#a855f7"),
	Tier("Master", 1900, "#f97316"),
	Tier("Grandmaster", 2400, "#ef4444"),
	Tier("Legendary", 3000, "#dc2626"),
)


def tier_for(rating: int) -> Tier:
	"""Return the highest tier whose threshold the rating reaches."""
	for tier in reversed(TIERS):
		if rating >= tier.min_rating:
			return tier
	return TIERS[0]
