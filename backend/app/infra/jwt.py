"""HS256 access tokens shared with the CRUD application.

Tokens carry ``sub`` (the user id), optional ``roles`` and the usual
issuer, audience and expiry claims.
"""

from __future__ import annotations

import time
from typing import Any, Iterable, Optional

import jwt
from jwt import InvalidTokenError

from app.settings import settings

ISSUER = "dps-api"
AUDIENCE = "dps-fe"
ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 15 * 60
LEEWAY_SECONDS = 5


def encode_access(
	subject: str,
	*,
	roles: Iterable[str] = (),
	ttl_seconds: int = DEFAULT_TTL_SECONDS,
	now: Optional[int] = None,
) -> str:
	issued = int(now if now is not None else time.time())
	claims: dict[str, Any] = {
		"sub": subject,
		"iss": ISSUER,
		"aud": AUDIENCE,
		"iat": issued,
		"exp": issued + ttl_seconds,
	}
	role_list = [role for role in roles if role]
	if role_list:
		claims["roles"] = role_list
	return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> dict[str, Any]:
	"""Validate signature and standard claims; raises ``InvalidTokenError``."""
	claims = jwt.decode(
		token,
		settings.secret_key,
		algorithms=[ALGORITHM],
		audience=AUDIENCE,
		issuer=ISSUER,
		leeway=LEEWAY_SECONDS,
		options={"require": ["sub", "exp", "iat", "iss", "aud"]},
	)
	if not str(claims.get("sub") or "").strip():
		raise InvalidTokenError("missing_claim:sub")
	return claims
