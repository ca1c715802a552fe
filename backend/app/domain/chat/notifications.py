"""Best-effort new-message notifications.

Dispatch never blocks or fails the message write: each notification runs in
its own task and its outcome is only logged and counted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, Protocol, Set

import ulid

from app.infra.documents import DocumentStore, get_document_store
from app.obs import metrics as obs_metrics
from app.settings import settings

from . import sockets
from .models import NOTIFICATIONS_COLLECTION, utcnow

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 100
FALLBACK_SENDER_NAME = "Someone"

_PENDING: Set[asyncio.Task] = set()


class Notifier(Protocol):
	async def notify(self, user_id: str, notification: Dict[str, Any]) -> bool:
		...


def truncate_body(body: str, limit: int = MAX_BODY_LENGTH) -> str:
	return body if len(body) <= limit else f"{body[:limit]}..."


def build_chat_notification(
	*,
	conversation_id: str,
	sender_id: str,
	sender_name: Optional[str],
	text: str,
) -> Dict[str, Any]:
	name = sender_name or FALLBACK_SENDER_NAME
	return {
		"title": settings.chat_notification_title,
		"body": truncate_body(f"{name}: {text}"),
		"data": {
			"type": "chat",
			"chat_id": conversation_id,
			"sender_id": sender_id,
			"sender_name": name,
			"link": f"/chat?roomId={conversation_id}",
		},
	}


class InAppNotifier:
	"""Stores the notification for the receiver's inbox and pushes it over the socket."""

	def __init__(self, store: Optional[DocumentStore] = None) -> None:
		self._store = store

	@property
	def store(self) -> DocumentStore:
		return self._store or get_document_store()

	async def notify(self, user_id: str, notification: Dict[str, Any]) -> bool:
		data = notification.get("data") or {}
		record = {
			"user_id": user_id,
			"kind": data.get("type", "chat"),
			"title": notification.get("title"),
			"body": notification.get("body"),
			"link": data.get("link"),
			"data": data,
			"read": False,
			"created_at": utcnow().isoformat(timespec="microseconds"),
		}
		notification_id = str(ulid.new())
		await self.store.set(NOTIFICATIONS_COLLECTION, notification_id, record)
		await sockets.emit_notification(user_id, {"id": notification_id, **record})
		return True


async def _deliver(user_id: str, delivery: Awaitable[bool]) -> bool:
	try:
		delivered = await delivery
	except Exception:
		obs_metrics.inc_chat_notification("error")
		logger.warning("chat_notification_failed", extra={"receiver_id": user_id}, exc_info=True)
		return False
	if not delivered:
		obs_metrics.inc_chat_notification("rejected")
		logger.warning("chat_notification_rejected", extra={"receiver_id": user_id})
		return False
	obs_metrics.inc_chat_notification("sent")
	return True


def dispatch(user_id: str, delivery: Awaitable[bool]) -> asyncio.Task:
	"""Schedule delivery without awaiting it; the task is kept alive until done."""
	task = asyncio.create_task(_deliver(user_id, delivery))
	_PENDING.add(task)
	task.add_done_callback(_PENDING.discard)
	return task


async def drain() -> None:
	"""Wait for in-flight notifications (shutdown and tests)."""
	if _PENDING:
		await asyncio.gather(*list(_PENDING), return_exceptions=True)
