"""FastAPI endpoints for one-to-one marketplace chat."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.domain.chat import service
from app.domain.chat.exceptions import ChatError
from app.domain.chat.schemas import (
	ConversationListResponse,
	ConversationResponse,
	MessageListResponse,
	MessageResponse,
	OpenConversationRequest,
	PostMessageRequest,
)
from app.infra import rate_limit
from app.infra.auth import AuthenticatedUser, get_admin_user, get_current_user
from app.infra.rate_limit import RateLimitExceeded
from app.obs import metrics as obs_metrics
from app.settings import settings

router = APIRouter(prefix="/chat", tags=["chat"])


def _as_http_error(exc: ChatError) -> HTTPException:
	return HTTPException(status_code=exc.status_code, detail=exc.reason)


async def chat_user(auth_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	"""Authenticated caller, limited to a fixed number of chat requests per minute."""
	try:
		await rate_limit.enforce("chat", auth_user.id, limit=settings.chat_rate_limit_per_minute)
	except RateLimitExceeded as exc:
		obs_metrics.inc_rate_limited(exc.kind)
		raise HTTPException(
			status.HTTP_429_TOO_MANY_REQUESTS,
			detail="rate_limited",
			headers={"Retry-After": str(exc.retry_after)},
		) from exc
	return auth_user


@router.get("", response_model=ConversationListResponse)
async def list_conversations_endpoint(
	auth_user: AuthenticatedUser = Depends(chat_user),
) -> ConversationListResponse:
	return await service.list_conversations(auth_user)


@router.post("", response_model=ConversationResponse)
async def open_conversation_endpoint(
	payload: OpenConversationRequest,
	auth_user: AuthenticatedUser = Depends(chat_user),
) -> ConversationResponse:
	try:
		return await service.open_conversation(auth_user, payload)
	except ChatError as exc:
		raise _as_http_error(exc) from exc


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation_endpoint(
	conversation_id: str,
	auth_user: AuthenticatedUser = Depends(chat_user),
) -> ConversationResponse:
	try:
		return await service.get_conversation(auth_user, conversation_id)
	except ChatError as exc:
		raise _as_http_error(exc) from exc


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages_endpoint(
	conversation_id: str,
	auth_user: AuthenticatedUser = Depends(chat_user),
) -> MessageListResponse:
	try:
		return await service.list_messages(auth_user, conversation_id)
	except ChatError as exc:
		raise _as_http_error(exc) from exc


@router.post(
	"/{conversation_id}/messages",
	response_model=MessageResponse,
	status_code=status.HTTP_201_CREATED,
)
async def post_message_endpoint(
	conversation_id: str,
	payload: PostMessageRequest,
	auth_user: AuthenticatedUser = Depends(chat_user),
) -> MessageResponse:
	try:
		return await service.post_message(auth_user, conversation_id, payload)
	except ChatError as exc:
		raise _as_http_error(exc) from exc


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation_endpoint(
	conversation_id: str,
	_: AuthenticatedUser = Depends(get_admin_user),
) -> Response:
	try:
		await service.delete_conversation(conversation_id)
	except ChatError as exc:
		raise _as_http_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)
