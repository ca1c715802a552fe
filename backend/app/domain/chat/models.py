"""Domain models for chat rooms and messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from app.infra.documents import Document

ROOMS_COLLECTION = "chat_rooms"
MESSAGES_CHILD = "messages"
USERS_COLLECTION = "users"
PRODUCTS_COLLECTION = "products"
NOTIFICATIONS_COLLECTION = "notifications"

# Records written before the participant list existed carry the pair under these names.
LEGACY_PAIR_FIELDS: Tuple[Tuple[str, str], ...] = (
	("buyer_id", "seller_id"),
	("buyerId", "sellerId"),
)


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> Optional[datetime]:
	if isinstance(value, datetime):
		return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
	if not value or not isinstance(value, str):
		return None
	try:
		parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	except ValueError:
		return None
	return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _first(data: Mapping[str, Any], *names: str) -> Any:
	for name in names:
		value = data.get(name)
		if value not in (None, ""):
			return value
	return None


def stored_names(data: Mapping[str, Any]) -> List[str]:
	names = _first(data, "participant_names", "participantNames")
	return [str(n) if n is not None else "" for n in names] if isinstance(names, list) else []


@dataclass(slots=True, frozen=True)
class ParticipantSet:
	"""Membership as stored in the ``participants`` list (possibly corrupted)."""

	members: Tuple[str, ...]


@dataclass(slots=True, frozen=True)
class LegacyPair:
	"""Membership as stored by older clients in two named fields."""

	party_a: str
	party_b: str

	def members(self) -> Tuple[str, str]:
		return (self.party_a, self.party_b)

	def other(self, user_id: str) -> Optional[str]:
		if user_id == self.party_a:
			return self.party_b
		if user_id == self.party_b:
			return self.party_a
		return None


MembershipShape = Union[ParticipantSet, LegacyPair]


@dataclass(slots=True)
class ConversationRecord:
	id: str
	participants: List[str]
	participant_names: List[str] = field(default_factory=list)
	scope_id: Optional[str] = None
	scope_title: Optional[str] = None
	scope_image: Optional[str] = None
	last_message_text: str = ""
	last_message_sender_id: Optional[str] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None
	legacy: Optional[LegacyPair] = None

	@classmethod
	def from_document(
		cls,
		doc: Document,
		*,
		participants: List[str],
		legacy: Optional[LegacyPair] = None,
		participant_names: Optional[List[str]] = None,
	) -> "ConversationRecord":
		data = doc.data
		scope_id = _first(data, "scope_id", "productId")
		return cls(
			id=doc.id,
			participants=list(participants),
			participant_names=list(participant_names) if participant_names is not None else stored_names(data),
			scope_id=str(scope_id) if scope_id is not None else None,
			scope_title=_first(data, "scope_title", "productTitle"),
			scope_image=_first(data, "scope_image", "productImage"),
			last_message_text=str(_first(data, "last_message_text", "lastMessage") or ""),
			last_message_sender_id=_first(data, "last_message_sender_id", "lastMessageSenderId"),
			created_at=parse_timestamp(_first(data, "created_at", "createdAt")),
			updated_at=parse_timestamp(_first(data, "updated_at", "updatedAt")),
			legacy=legacy,
		)

	def to_document(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"participants": list(self.participants),
			"participant_names": list(self.participant_names),
			"scope_id": self.scope_id,
			"scope_title": self.scope_title,
			"scope_image": self.scope_image,
			"last_message_text": self.last_message_text,
			"last_message_sender_id": self.last_message_sender_id,
			"created_at": self.created_at.isoformat(timespec="microseconds") if self.created_at else None,
			"updated_at": self.updated_at.isoformat(timespec="microseconds") if self.updated_at else None,
		}
		if self.legacy is not None:
			payload["buyer_id"] = self.legacy.party_a
			payload["seller_id"] = self.legacy.party_b
		return payload

	def other_participant(self, user_id: str) -> Optional[str]:
		for member in self.participants:
			if member != user_id:
				return member
		return None

	def name_of(self, user_id: str) -> Optional[str]:
		try:
			index = self.participants.index(user_id)
		except ValueError:
			return None
		if index < len(self.participant_names):
			return self.participant_names[index] or None
		return None

	def sort_key(self) -> datetime:
		return self.updated_at or self.created_at or datetime.min.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class Message:
	id: str
	conversation_id: str
	sender_id: str
	receiver_id: str
	text: str
	timestamp: datetime
	read: bool = False

	@classmethod
	def from_document(cls, conversation_id: str, doc: Document) -> "Message":
		data = doc.data
		return cls(
			id=doc.id,
			conversation_id=conversation_id,
			sender_id=str(_first(data, "sender_id", "senderId") or ""),
			receiver_id=str(_first(data, "receiver_id", "receiverId") or ""),
			text=str(data.get("text") or ""),
			timestamp=parse_timestamp(data.get("timestamp")) or utcnow(),
			read=bool(data.get("read", False)),
		)

	def to_document(self) -> Dict[str, Any]:
		return {
			"conversation_id": self.conversation_id,
			"sender_id": self.sender_id,
			"receiver_id": self.receiver_id,
			"text": self.text,
			"timestamp": self.timestamp.isoformat(timespec="microseconds"),
			"read": self.read,
		}
