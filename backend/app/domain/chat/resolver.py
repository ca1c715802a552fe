"""Find-or-create for conversation records.

At most one record exists per (pair, scope): lookups go through the stored
participant lists first, then the canonical key, and creation is a conditional
write against that key so two concurrent first contacts converge on one record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.infra.documents import ARRAY_CONTAINS, Document, DocumentStore, get_document_store
from app.obs import metrics as obs_metrics

from . import profiles
from .exceptions import CreationFailed, InvalidIdentifier, InvalidOperation
from .healing import known_names, persist_participants
from .identifiers import is_valid_identifier
from .keys import derive_key
from .models import ROOMS_COLLECTION, ConversationRecord, LegacyPair, utcnow
from .participants import contains_all, legacy_pair, sanitize

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RoomContext:
	"""Optional denormalized details stored on a new record."""

	scope_title: Optional[str] = None
	scope_image: Optional[str] = None
	names: Dict[str, str] = field(default_factory=dict)
	fallback_names: Dict[str, str] = field(default_factory=dict)


def _clean(value: object) -> object:
	return value.strip() if isinstance(value, str) else value


def _scope_of(data: Dict[str, object]) -> Optional[str]:
	value = data.get("scope_id") or data.get("productId")
	return str(value) if value else None


class RoomResolver:
	def __init__(self, store: Optional[DocumentStore] = None) -> None:
		self._store = store

	@property
	def store(self) -> DocumentStore:
		return self._store or get_document_store()

	async def find_or_create(
		self,
		self_id: str,
		other_id: str,
		scope_id: Optional[str] = None,
		*,
		context: Optional[RoomContext] = None,
	) -> ConversationRecord:
		self_id, other_id = _clean(self_id), _clean(other_id)
		if self_id == other_id:
			raise InvalidOperation("cannot_chat_with_self")
		if not is_valid_identifier(self_id) or not is_valid_identifier(other_id):
			raise InvalidIdentifier()
		scope_id = scope_id.strip() if scope_id and scope_id.strip() else None
		key = derive_key(self_id, other_id, scope_id)

		existing = await self._search(self_id, other_id, scope_id, key)
		if existing is not None:
			obs_metrics.inc_chat_room_reused()
			return await self._heal(existing)

		by_key = await self.store.get(ROOMS_COLLECTION, key)
		if by_key is not None:
			obs_metrics.inc_chat_room_reused()
			return await self._heal(by_key, ensure=(self_id, other_id))

		record = await self._build(key, self_id, other_id, scope_id, context or RoomContext())
		created = await self.store.create(ROOMS_COLLECTION, key, record.to_document())
		if created:
			obs_metrics.inc_chat_room_created()
			logger.info("chat_room_created", extra={"conversation_id": key, "scope_id": scope_id})
			return record

		winner = await self.store.get(ROOMS_COLLECTION, key)
		if winner is None:
			logger.error("chat_room_create_conflict_vanished", extra={"conversation_id": key})
			raise CreationFailed()
		obs_metrics.inc_chat_room_reused()
		return await self._heal(winner, ensure=(self_id, other_id))

	async def _search(
		self,
		self_id: str,
		other_id: str,
		scope_id: Optional[str],
		key: str,
	) -> Optional[Document]:
		docs = await self.store.query(ROOMS_COLLECTION, [("participants", ARRAY_CONTAINS, self_id)])
		matches = [
			doc
			for doc in docs
			if other_id in sanitize(doc.data.get("participants"))
			and (scope_id is None or _scope_of(doc.data) == scope_id)
		]
		if not matches:
			return None
		matches.sort(key=lambda doc: (doc.id != key, doc.id))
		return matches[0]

	async def _heal(self, doc: Document, *, ensure: tuple[str, ...] = ()) -> ConversationRecord:
		raw = doc.data.get("participants")
		stored = raw if isinstance(raw, list) else []
		cleaned = sanitize(stored)
		reason = "sanitized"
		if ensure and not contains_all(cleaned, *ensure):
			cleaned = list(ensure)
			reason = "canonical_key"
		names = None
		if cleaned != stored:
			repair = await persist_participants(
				self.store,
				doc.id,
				cleaned,
				reason=reason,
				names=known_names(doc.data),
			)
			if repair is not None:
				cleaned, names = repair.participants, repair.participant_names
			else:
				cleaned = sanitize(stored)
		return ConversationRecord.from_document(
			doc,
			participants=cleaned,
			legacy=legacy_pair(doc.data),
			participant_names=names,
		)

	async def _build(
		self,
		key: str,
		self_id: str,
		other_id: str,
		scope_id: Optional[str],
		context: RoomContext,
	) -> ConversationRecord:
		participants = sorted(sanitize([self_id, other_id]))
		if len(participants) != 2:
			logger.error("chat_room_participants_invalid", extra={"conversation_id": key})
			raise CreationFailed()
		names: List[str] = []
		for user_id in participants:
			name = (
				await profiles.display_name(self.store, user_id)
				or context.names.get(user_id)
				or context.fallback_names.get(user_id)
				or ""
			)
			names.append(name)
		now = utcnow()
		return ConversationRecord(
			id=key,
			participants=participants,
			participant_names=names,
			scope_id=scope_id,
			scope_title=context.scope_title,
			scope_image=context.scope_image,
			created_at=now,
			updated_at=now,
			legacy=LegacyPair(party_a=self_id, party_b=other_id),
		)

