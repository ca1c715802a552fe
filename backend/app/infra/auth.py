"""Authentication helpers for FastAPI endpoints.

- Bearer JWT verification (HS256) using settings.secret_key.
- Dev-only header identity for local tools and tests.
- A credential verifier used to turn a stray bearer token back into the
  user identifier it was issued for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from app.domain.chat.identifiers import is_valid_identifier
from app.domain.chat.participants import CredentialVerifier
from app.infra import jwt as jwt_helper
from app.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None
	roles: Tuple[str, ...] = ()

	def has_role(self, role: str) -> bool:
		return role in self.roles


_bearer_scheme = HTTPBearer(auto_error=False)


def _parse_roles(claim: object) -> Tuple[str, ...]:
	if isinstance(claim, (list, tuple)):
		return tuple(str(r).strip() for r in claim if str(r).strip())
	if isinstance(claim, str):
		return tuple(part.strip() for part in claim.split(",") if part.strip())
	return ()


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	Requirements:
	- issuer="wastecycle-api", audience="wastecycle-web"
	- required claims: sub, exp, iat
	- roles can be list[str] or comma-separated string.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	display_name = payload.get("name") or payload.get("display_name")
	roles = _parse_roles(payload.get("roles") or payload.get("role"))
	return AuthenticatedUser(
		id=sub,
		display_name=str(display_name) if display_name is not None else None,
		roles=roles,
	)


def _ensure_identifier(user: AuthenticatedUser) -> AuthenticatedUser:
	# A caller id the length of a bearer token means the client sent the token as its id.
	if not is_valid_identifier(user.id):
		logger.warning("caller_id_rejected", extra={"id_length": len(user.id)})
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_user_id")
	return user


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return _ensure_identifier(verify_access_jwt(credentials.credentials))

	if settings.is_dev() and x_user_id:
		roles = _parse_roles(x_user_roles) if x_user_roles else ()
		user = AuthenticatedUser(id=x_user_id.strip(), display_name=x_user_name, roles=roles)
		return _ensure_identifier(user)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


async def get_admin_user(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	if user.has_role("admin"):
		return user
	raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")


class JWTCredentialVerifier:
	"""Decode a bearer credential to the user identifier in its ``sub`` claim.

	Returns None for expired, tampered or otherwise invalid tokens.
	"""

	async def verify_credential(self, token: str) -> Optional[str]:
		try:
			payload = jwt_helper.decode_access(token)
		except InvalidTokenError as exc:
			logger.warning("credential_decode_failed", extra={"reason": type(exc).__name__})
			return None
		sub = str(payload.get("sub") or "").strip()
		return sub or None


_verifier: CredentialVerifier = JWTCredentialVerifier()


def get_credential_verifier() -> CredentialVerifier:
	return _verifier


def set_credential_verifier(verifier: CredentialVerifier) -> None:
	global _verifier
	_verifier = verifier
