"""Error taxonomy for the rating engine."""

from __future__ import annotations

from fastapi import status


class RatingError(Exception):
	"""Base class for rating engine errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "rating_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class InvalidEvent(RatingError):
	"""Event type outside the closed enumeration; nothing is processed."""

	detail = "invalid_event"


class RatingUserNotFound(RatingError):
	status_code = status.HTTP_404_NOT_FOUND
	detail = "user_not_found"


class DataSourceUnavailable(RatingError):
	"""A signal source could not be read; the component degrades to neutral."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "data_source_unavailable"

	def __init__(self, component: str, detail: str | None = None) -> None:
		super().__init__(detail or f"data_source_unavailable:{component}")
		self.component = component


class DuplicateFinalization(RatingError):
	"""A LOCKED entry already exists for (user, day); the existing row wins."""

	status_code = status.HTTP_409_CONFLICT
	detail = "duplicate_finalization"


class PersistenceFailure(RatingError):
	"""A ledger write failed; the previously persisted rating stays authoritative."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "rating_unavailable"

	def __init__(self, operation: str, detail: str | None = None) -> None:
		super().__init__(detail)
		self.operation = operation
