from unittest.mock import AsyncMock

import pytest
import socketio

from app.domain.chat import sockets
from app.domain.chat.sockets import ChatNamespace
from app.infra import jwt as jwt_helper
from app.settings import settings


def _scope_with_authorization(token: str) -> dict:
	return {
		"headers": [(b"authorization", f"Bearer {token}".encode())],
	}


def _namespace() -> ChatNamespace:
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = ChatNamespace()
	server.register_namespace(namespace)
	namespace.emit = AsyncMock()
	namespace.enter_room = AsyncMock()
	namespace.leave_room = AsyncMock()
	return namespace


@pytest.mark.asyncio
async def test_connect_requires_identity(monkeypatch):
	monkeypatch.setattr(settings, "environment", "production")
	namespace = _namespace()
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})


@pytest.mark.asyncio
async def test_connect_with_bearer_joins_user_room():
	namespace = _namespace()
	token = jwt_helper.encode_access({"sub": "user-1"})
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_authorization(token)})
	namespace.enter_room.assert_awaited_once_with("sid-1", "user:user-1")
	assert namespace.emit.await_args_list[0].args[0] == "chat:ack"


@pytest.mark.asyncio
async def test_connect_rejects_token_shaped_user_id():
	namespace = _namespace()
	environ = {"asgi.scope": {"headers": [(b"x-user-id", ("a" * 150).encode())]}}
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", environ)


@pytest.mark.asyncio
async def test_emit_notification_targets_user_room():
	namespace = _namespace()
	original = sockets._namespace
	sockets.set_namespace(namespace)
	try:
		await sockets.emit_notification("user-2", {"title": "t"})
	finally:
		sockets.set_namespace(original)
	namespace.emit.assert_awaited_once_with("chat:notification", {"title": "t"}, room="user:user-2")
