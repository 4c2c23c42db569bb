"""Caller identity for rating endpoints and sockets.

Sessions belong to the surrounding CRUD application. Here a caller is either
a Bearer access token or, in development only, a bare ``X-User-Id`` header.
User ids are UUIDs; anything else is rejected here rather than reaching SQL.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from app.infra import jwt as jwt_helper
from app.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	roles: Tuple[str, ...] = ()


_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
	return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def parse_user_id(raw: Any) -> str:
	"""Canonical UUID string for a caller-supplied id; 401 when malformed."""
	try:
		return str(uuid.UUID(str(raw).strip()))
	except (TypeError, ValueError):
		raise _unauthorized()


def _split_roles(claim: Any) -> Tuple[str, ...]:
	if isinstance(claim, str):
		claim = claim.split(",")
	if not isinstance(claim, (list, tuple)):
		return ()
	return tuple(role for role in (str(item).strip() for item in claim) if role)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		claims = jwt_helper.decode_access(token)
	except InvalidTokenError:
		raise _unauthorized()
	return AuthenticatedUser(id=parse_user_id(claims["sub"]), roles=_split_roles(claims.get("roles")))


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	if settings.is_dev() and x_user_id and x_user_id.strip():
		return AuthenticatedUser(id=parse_user_id(x_user_id), roles=_split_roles(x_user_roles))
	raise _unauthorized()
