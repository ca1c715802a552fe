"""Socket.IO namespace for realtime chat notifications."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import socketio
from fastapi import HTTPException

from app.infra.auth import AuthenticatedUser, verify_access_jwt
from app.obs import metrics as obs_metrics
from app.settings import settings

from .identifiers import is_valid_identifier

logger = logging.getLogger(__name__)

_namespace: "ChatNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _resolve_user(scope: dict, auth_payload: dict) -> AuthenticatedUser:
	token = auth_payload.get("token")
	if not token:
		header = _header(scope, "authorization") or ""
		if header.lower().startswith("bearer "):
			token = header.split(" ", 1)[1]
	if token:
		try:
			user = verify_access_jwt(token)
		except HTTPException as exc:
			raise ConnectionRefusedError("invalid token") from exc
	elif settings.is_dev():
		user_id = auth_payload.get("userId") or _header(scope, "x-user-id")
		if not user_id:
			raise ConnectionRefusedError("missing user id")
		user = AuthenticatedUser(id=str(user_id).strip())
	else:
		raise ConnectionRefusedError("missing token")
	if not is_valid_identifier(user.id):
		raise ConnectionRefusedError("invalid user id")
	return user


class ChatNamespace(socketio.AsyncNamespace):
	"""Namespace that places clients in a per-user room for direct delivery."""

	def __init__(self) -> None:
		super().__init__("/chat")
		self._sessions: Dict[str, AuthenticatedUser] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		scope = environ.get("asgi.scope", environ)
		user = _resolve_user(scope, auth or {})
		obs_metrics.socket_connected(self.namespace)
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("chat:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str, *args) -> None:
		user = self._sessions.pop(sid, None)
		if user:
			obs_metrics.socket_disconnected(self.namespace)
			await self.leave_room(sid, self.user_room(user.id))

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(namespace: Optional[ChatNamespace]) -> None:
	global _namespace
	_namespace = namespace


async def emit_notification(user_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "chat:notification")
	await _namespace.emit("chat:notification", payload, room=ChatNamespace.user_room(user_id))
