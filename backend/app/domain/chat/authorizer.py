"""Membership checks that repair stored participant lists on the way.

Records written by older clients keep their members in two named fields, and
some carry bearer credentials where identifiers belong. Authorization folds
those shapes back into a clean participant list, persists the repair, and only
then decides whether the caller is a member.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from app.infra.auth import get_credential_verifier
from app.infra.documents import Document, DocumentStore, get_document_store
from app.obs import metrics as obs_metrics
from app.settings import settings

from .exceptions import Denied, NotFound
from .healing import ParticipantRepair, known_names, persist_participants
from .models import ROOMS_COLLECTION, ConversationRecord
from .participants import (
	CredentialVerifier,
	MembershipView,
	fold_recovered,
	is_valid_pair,
	normalize_membership,
	resolve_entries,
	sanitize,
)

logger = logging.getLogger(__name__)


class MembershipAuthorizer:
	def __init__(
		self,
		store: Optional[DocumentStore] = None,
		verifier: Optional[CredentialVerifier] = None,
	) -> None:
		self._store = store
		self._verifier = verifier

	@property
	def store(self) -> DocumentStore:
		return self._store or get_document_store()

	@property
	def verifier(self) -> CredentialVerifier:
		return self._verifier or get_credential_verifier()

	async def authorize(self, conversation_id: str, caller_id: str) -> ConversationRecord:
		doc = await self.store.get(ROOMS_COLLECTION, conversation_id)
		if doc is None:
			raise NotFound()
		view = normalize_membership(doc.data)
		participants, names = await self._heal(doc, view)

		if caller_id in participants:
			return ConversationRecord.from_document(
				doc,
				participants=participants,
				legacy=view.legacy,
				participant_names=names,
			)

		rescued = await self._rescue_from_legacy(doc, caller_id, participants, view)
		if rescued is not None:
			return ConversationRecord.from_document(
				doc,
				participants=rescued.participants,
				legacy=view.legacy,
				participant_names=rescued.participant_names,
			)

		obs_metrics.inc_chat_denied()
		logger.warning("chat_access_denied", extra={"conversation_id": conversation_id, "caller_id": caller_id})
		raise Denied()

	async def _heal(self, doc: Document, view: MembershipView) -> Tuple[List[str], Optional[List[str]]]:
		raw = doc.data.get("participants")
		if view.source == "legacy":
			repair = await persist_participants(
				self.store,
				doc.id,
				view.participants,
				reason="legacy_fields",
				names=known_names(doc.data),
			)
			if repair is not None:
				return repair.participants, repair.participant_names
			return sanitize(raw), None

		participants = view.participants
		if view.recoverable:
			resolved = await resolve_entries(
				raw,
				self.verifier,
				timeout=settings.credential_decode_timeout_seconds,
			)
			recovered = fold_recovered(raw, resolved)
			if len(recovered) > len(participants):
				repair = await persist_participants(
					self.store,
					doc.id,
					recovered,
					reason="credential",
					names=known_names(doc.data, resolved),
				)
				if repair is not None:
					return repair.participants, repair.participant_names
				return participants, None

		if view.changed:
			repair = await persist_participants(
				self.store,
				doc.id,
				participants,
				reason="sanitized",
				names=known_names(doc.data),
			)
			if repair is not None:
				return repair.participants, repair.participant_names
		return participants, None

	async def _rescue_from_legacy(
		self,
		doc: Document,
		caller_id: str,
		participants: List[str],
		view: MembershipView,
	) -> Optional[ParticipantRepair]:
		"""Replace a broken member list with the legacy pair naming the caller.

		A list that already holds two distinct members is never touched.
		"""
		if len(participants) == 2 or view.legacy is None:
			return None
		other = view.legacy.other(caller_id)
		if other is None or not is_valid_pair(view.legacy):
			return None
		return await persist_participants(
			self.store,
			doc.id,
			[caller_id, other],
			reason="legacy_caller",
			names=known_names(doc.data),
		)
