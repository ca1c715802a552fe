"""Pydantic schemas for the chat API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .models import ConversationRecord, Message


class OpenConversationRequest(BaseModel):
	peer_id: Optional[str] = Field(default=None, description="The other participant's user id")
	product_id: Optional[str] = Field(default=None, description="Listing the conversation is about")

	@model_validator(mode="after")
	def _require_target(self) -> "OpenConversationRequest":
		if not (self.peer_id or "").strip() and not (self.product_id or "").strip():
			raise ValueError("peer_id or product_id is required")
		return self


class PostMessageRequest(BaseModel):
	text: str = Field(..., max_length=4000)


class ConversationResponse(BaseModel):
	id: str
	participants: List[str]
	participant_names: List[str]
	scope_id: Optional[str] = None
	scope_title: Optional[str] = None
	scope_image: Optional[str] = None
	last_message_text: str = ""
	last_message_sender_id: Optional[str] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None
	other_participant_id: Optional[str] = None
	other_participant_name: Optional[str] = None

	@classmethod
	def from_record(cls, record: ConversationRecord, viewer_id: str) -> "ConversationResponse":
		other_id = record.other_participant(viewer_id)
		return cls(
			id=record.id,
			participants=list(record.participants),
			participant_names=list(record.participant_names),
			scope_id=record.scope_id,
			scope_title=record.scope_title,
			scope_image=record.scope_image,
			last_message_text=record.last_message_text,
			last_message_sender_id=record.last_message_sender_id,
			created_at=record.created_at,
			updated_at=record.updated_at,
			other_participant_id=other_id,
			other_participant_name=record.name_of(other_id) if other_id else None,
		)


class ConversationListResponse(BaseModel):
	items: List[ConversationResponse]


class MessageResponse(BaseModel):
	id: str
	conversation_id: str
	sender_id: str
	receiver_id: str
	text: str
	timestamp: datetime
	read: bool = False

	@classmethod
	def from_model(cls, message: Message) -> "MessageResponse":
		return cls(
			id=message.id,
			conversation_id=message.conversation_id,
			sender_id=message.sender_id,
			receiver_id=message.receiver_id,
			text=message.text,
			timestamp=message.timestamp,
			read=message.read,
		)


class MessageListResponse(BaseModel):
	items: List[MessageResponse]
