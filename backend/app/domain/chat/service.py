"""Chat service: the operations the API and sockets call into."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from app.infra.auth import AuthenticatedUser
from app.infra.documents import ARRAY_CONTAINS, EQ, Document, DocumentStore, get_document_store
from app.obs import metrics as obs_metrics

from . import notifications, profiles
from .authorizer import MembershipAuthorizer
from .exceptions import CreationFailed, InvalidArgument, NotFound, ScopeNotFound
from .models import (
	LEGACY_PAIR_FIELDS,
	MESSAGES_CHILD,
	ROOMS_COLLECTION,
	ConversationRecord,
	Message,
	utcnow,
)
from .notifications import InAppNotifier, Notifier
from .participants import CredentialVerifier, normalize_membership
from .resolver import RoomContext, RoomResolver
from .schemas import (
	ConversationListResponse,
	ConversationResponse,
	MessageListResponse,
	MessageResponse,
	OpenConversationRequest,
	PostMessageRequest,
)

logger = logging.getLogger(__name__)


class ChatService:
	def __init__(
		self,
		store: Optional[DocumentStore] = None,
		*,
		verifier: Optional[CredentialVerifier] = None,
		notifier: Optional[Notifier] = None,
	) -> None:
		self._store = store
		self._resolver = RoomResolver(store)
		self._authorizer = MembershipAuthorizer(store, verifier)
		self._notifier = notifier or InAppNotifier(store)

	@property
	def store(self) -> DocumentStore:
		return self._store or get_document_store()

	async def list_conversations_for_user(self, user_id: str) -> List[ConversationRecord]:
		"""Rooms the user currently belongs to, most recently active first.

		Legacy records that never got a participant list are found through
		their named fields and normalized the same way authorization would.
		"""
		lookups = [[("participants", ARRAY_CONTAINS, user_id)]]
		for fields in LEGACY_PAIR_FIELDS:
			lookups.extend([(name, EQ, user_id)] for name in fields)
		found: Dict[str, Document] = {}
		for filters in lookups:
			for doc in await self.store.query(ROOMS_COLLECTION, filters):
				found.setdefault(doc.id, doc)

		records: List[ConversationRecord] = []
		for doc in found.values():
			view = normalize_membership(doc.data)
			if user_id not in view.participants:
				continue
			records.append(ConversationRecord.from_document(doc, participants=view.participants, legacy=view.legacy))
		records.sort(key=lambda record: record.sort_key(), reverse=True)
		return records

	async def open_conversation(
		self,
		caller_id: str,
		*,
		peer_id: Optional[str] = None,
		product_id: Optional[str] = None,
		caller_name: Optional[str] = None,
	) -> ConversationRecord:
		peer_id = (peer_id or "").strip() or None
		product_id = (product_id or "").strip() or None
		context = RoomContext()
		if caller_name:
			context.names[caller_id] = caller_name
		context.fallback_names[caller_id] = "Buyer"

		if product_id is not None:
			product = await profiles.load_product(self.store, product_id)
			if product is None:
				raise ScopeNotFound()
			peer_id = peer_id or product.owner_id
			if peer_id is None:
				raise InvalidArgument("product_owner_unknown")
			context.scope_title = product.title
			context.scope_image = product.image
			if product.farm_name and peer_id == product.owner_id:
				context.fallback_names[peer_id] = product.farm_name
		if peer_id is None:
			raise InvalidArgument("peer_required")
		context.fallback_names.setdefault(peer_id, "Seller")
		return await self._resolver.find_or_create(caller_id, peer_id, product_id, context=context)

	async def get_conversation(self, conversation_id: str, caller_id: str) -> ConversationRecord:
		return await self._authorizer.authorize(conversation_id, caller_id)

	async def list_messages(self, conversation_id: str, caller_id: str) -> List[Message]:
		await self._authorizer.authorize(conversation_id, caller_id)
		docs = await self.store.list_children(ROOMS_COLLECTION, conversation_id, MESSAGES_CHILD, order_by="timestamp")
		messages = [Message.from_document(conversation_id, doc) for doc in docs]
		messages.sort(key=lambda message: message.timestamp)
		return messages

	async def post_message(self, conversation_id: str, caller_id: str, text: str) -> Message:
		record = await self._authorizer.authorize(conversation_id, caller_id)
		body = (text or "").strip()
		if not body:
			raise InvalidArgument("empty_message")
		receiver_id = record.other_participant(caller_id)
		if len(record.participants) != 2 or receiver_id is None:
			logger.error(
				"chat_participants_invariant_broken",
				extra={"conversation_id": conversation_id, "count": len(record.participants)},
			)
			raise CreationFailed()

		now = utcnow()
		message = Message(
			id="",
			conversation_id=conversation_id,
			sender_id=caller_id,
			receiver_id=receiver_id,
			text=body,
			timestamp=now,
		)
		message.id = await self.store.append_child(
			ROOMS_COLLECTION,
			conversation_id,
			MESSAGES_CHILD,
			message.to_document(),
		)
		await self.store.update(
			ROOMS_COLLECTION,
			conversation_id,
			{
				"last_message_text": body,
				"last_message_sender_id": caller_id,
				"updated_at": now.isoformat(timespec="microseconds"),
			},
		)
		obs_metrics.inc_chat_message()
		notifications.dispatch(receiver_id, self._notify_receiver(record, caller_id, receiver_id, body))
		return message

	async def _notify_receiver(
		self,
		record: ConversationRecord,
		sender_id: str,
		receiver_id: str,
		text: str,
	) -> bool:
		sender_name = record.name_of(sender_id) or await profiles.display_name(self.store, sender_id)
		notification = notifications.build_chat_notification(
			conversation_id=record.id,
			sender_id=sender_id,
			sender_name=sender_name,
			text=text,
		)
		return await self._notifier.notify(receiver_id, notification)

	async def delete_conversation(self, conversation_id: str) -> int:
		"""Remove a room and its messages; returns the number of messages removed."""
		removed = await self.store.delete_children(ROOMS_COLLECTION, conversation_id, MESSAGES_CHILD)
		if not await self.store.delete(ROOMS_COLLECTION, conversation_id):
			raise NotFound()
		logger.warning("chat_room_deleted", extra={"conversation_id": conversation_id, "messages": removed})
		return removed


_SERVICE = ChatService()


def get_service() -> ChatService:
	return _SERVICE


def set_service(service: ChatService) -> None:
	global _SERVICE
	_SERVICE = service


async def list_conversations(auth_user: AuthenticatedUser) -> ConversationListResponse:
	records = await _SERVICE.list_conversations_for_user(auth_user.id)
	return ConversationListResponse(items=[ConversationResponse.from_record(r, auth_user.id) for r in records])


async def open_conversation(auth_user: AuthenticatedUser, payload: OpenConversationRequest) -> ConversationResponse:
	record = await _SERVICE.open_conversation(
		auth_user.id,
		peer_id=payload.peer_id,
		product_id=payload.product_id,
		caller_name=auth_user.display_name,
	)
	return ConversationResponse.from_record(record, auth_user.id)


async def get_conversation(auth_user: AuthenticatedUser, conversation_id: str) -> ConversationResponse:
	record = await _SERVICE.get_conversation(conversation_id, auth_user.id)
	return ConversationResponse.from_record(record, auth_user.id)


async def list_messages(auth_user: AuthenticatedUser, conversation_id: str) -> MessageListResponse:
	messages = await _SERVICE.list_messages(conversation_id, auth_user.id)
	return MessageListResponse(items=[MessageResponse.from_model(m) for m in messages])


async def post_message(
	auth_user: AuthenticatedUser,
	conversation_id: str,
	payload: PostMessageRequest,
) -> MessageResponse:
	message = await _SERVICE.post_message(conversation_id, auth_user.id, payload.text)
	return MessageResponse.from_model(message)


async def delete_conversation(conversation_id: str) -> int:
	return await _SERVICE.delete_conversation(conversation_id)
