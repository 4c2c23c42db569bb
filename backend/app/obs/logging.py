"""Structured JSON logging for the rating service.

Every record is one JSON line carrying the service identity, whatever request
context is bound (request id, route, user) and the ``extra`` fields passed by
the caller. Fields whose names suggest free text or credentials are redacted.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.settings import settings

_LOGGER_NAME = "dps"

_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": ContextVar("obs_request_id", default=None),
	"route": ContextVar("obs_route", default=None),
	"user_id": ContextVar("obs_user_id", default=None),
}

# Event metadata comes from the CRUD layer and may carry free text.
_SENSITIVE_KEYWORDS = ("token", "secret", "authorization", "password", "email", "metadata", "title", "note")

# Ledger outcomes are rare and always kept, whatever the sampling rate.
_UNSAMPLED_MESSAGES = frozenset({"rating_day_locked", "migration_applied"})

# Attributes every LogRecord has; anything else on the record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "taskName"}

_MAX_STRING_LENGTH = 256
_MAX_ITEMS = 10


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Bind request-scoped fields; pass the result to ``reset_context`` afterwards."""
	return {name: _CONTEXT[name].set(value) for name, value in fields.items() if value is not None}


def reset_context(tokens: Dict[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name].reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT["request_id"].get()


def _is_sensitive(key: str) -> bool:
	lowered = key.lower()
	return any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS)


def _truncate(value: Any) -> Any:
	if isinstance(value, str) and len(value) > _MAX_STRING_LENGTH:
		return value[:_MAX_STRING_LENGTH] + "..."
	if isinstance(value, dict):
		items = list(value.items())
		trimmed = {str(k): ("[redacted]" if _is_sensitive(str(k)) else _truncate(v)) for k, v in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			trimmed["_truncated"] = len(items) - _MAX_ITEMS
		return trimmed
	if isinstance(value, (list, tuple, set, frozenset)):
		items = list(value)
		return [_truncate(item) for item in items[:_MAX_ITEMS]] + (["..."] if len(items) > _MAX_ITEMS else [])
	return value


def scrub(key: str, value: Any) -> Any:
	return "[redacted]" if _is_sensitive(key) else _truncate(value)


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update({name: var.get() for name, var in _CONTEXT.items() if var.get()})
		payload.update(
			{key: scrub(key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS and not key.startswith("_")}
		)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a random fraction of INFO records; other levels always pass."""

	def __init__(self, rate: Optional[float] = None) -> None:
		super().__init__()
		self._rate = rate

	@property
	def rate(self) -> float:
		value = settings.obs_log_sampling_rate_info if self._rate is None else self._rate
		return max(0.0, min(1.0, value))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or record.msg in _UNSAMPLED_MESSAGES:
			return True
		rate = self.rate
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return get_logger()


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
