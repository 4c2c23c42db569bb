"""Socket.IO namespace pushing rating deltas to the user's own room."""

from __future__ import annotations

from typing import Any, Dict, Optional

import socketio
from fastapi import HTTPException

from app.domain.rating.models import RatingState
from app.infra.auth import parse_user_id, verify_access_jwt
from app.obs import metrics as obs_metrics
from app.settings import settings

NAMESPACE = "/rating"
DELTA_EVENT = "rating:delta"

_namespace: Optional["RatingNamespace"] = None


class RatingNamespace(socketio.AsyncNamespace):
	def __init__(self) -> None:
		super().__init__(NAMESPACE)
		self._users: Dict[str, str] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		try:
			user_id = self._get_user_id(environ, auth)
		except (HTTPException, ValueError):
			raise ConnectionRefusedError("unauthorized")
		self._users[sid] = user_id
		await self.enter_room(sid, self.user_room(user_id))
		obs_metrics.socket_connected(NAMESPACE)

	async def on_disconnect(self, sid: str) -> None:
		user_id = self._users.pop(sid, None)
		if user_id:
			await self.leave_room(sid, self.user_room(user_id))
			obs_metrics.socket_disconnected(NAMESPACE)

	def _get_user_id(self, environ: dict, auth: Optional[dict]) -> str:
		scope = environ.get("asgi.scope", environ)
		payload = auth or scope.get("auth") or {}
		token = payload.get("token")
		if token:
			return verify_access_jwt(str(token)).id
		# Bare user ids are only trusted in development.
		user_id = payload.get("userId") or payload.get("user_id")
		if user_id and settings.is_dev():
			return parse_user_id(user_id)
		raise ValueError("missing_user_id")

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(namespace: Optional[RatingNamespace]) -> None:
	global _namespace
	_namespace = namespace


def delta_payload(state: RatingState) -> dict[str, Any]:
	entry = state.live_entry
	return {
		"rating": state.current_rating,
		"tier": state.tier,
		"tier_color": state.tier_color,
		"today_delta": state.today_delta,
		"today_dps": state.today_dps.total_dps,
		"live_change": entry.change if entry is not None else 0,
	}


async def emit_rating_delta(user_id: str, state: RatingState) -> None:
	if _namespace is None:
		return
	await _namespace.emit(DELTA_EVENT, delta_payload(state), room=RatingNamespace.user_room(user_id))
	obs_metrics.socket_event(NAMESPACE, DELTA_EVENT)
