"""Persistence of participant repairs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.infra.documents import DocumentStore
from app.obs import metrics as obs_metrics

from . import profiles
from .models import ROOMS_COLLECTION, stored_names
from .participants import legacy_pair, positional_members

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ParticipantRepair:
	participants: List[str]
	participant_names: List[str]


def known_names(data: Mapping[str, Any], positions: Optional[Sequence[Optional[str]]] = None) -> Dict[str, str]:
	"""Names already on the record, keyed by the member each slot belongs to.

	``positions`` lists the member each stored entry stands for; by default the
	stored identifiers. A record without any usable entries is assumed to hold
	names in canonical order of its legacy pair, which is how rooms are created.
	"""
	names = stored_names(data)
	if positions is None:
		positions = positional_members(data.get("participants"))
	if not any(positions):
		pair = legacy_pair(data)
		if pair is not None and len(names) == 2:
			positions = sorted(pair.members())
	return {member: name for member, name in zip(positions, names) if member and name}


async def persist_participants(
	store: DocumentStore,
	conversation_id: str,
	participants: Sequence[str],
	*,
	reason: str,
	names: Optional[Mapping[str, str]] = None,
) -> Optional[ParticipantRepair]:
	"""Write a repaired participant list in canonical order with aligned names.

	Returns None when the write failed; the stored record is then untouched and
	the caller falls back to the unrepaired view.
	"""
	names = names or {}
	members = sorted(participants)
	try:
		aligned = [names.get(member) or await profiles.display_name(store, member) or "" for member in members]
		await store.update(
			ROOMS_COLLECTION,
			conversation_id,
			{"participants": members, "participant_names": aligned},
		)
	except Exception:
		logger.warning(
			"participant_repair_failed",
			extra={"conversation_id": conversation_id, "reason": reason},
			exc_info=True,
		)
		return None
	obs_metrics.inc_chat_repair(reason)
	logger.warning(
		"participants_repaired",
		extra={"conversation_id": conversation_id, "reason": reason, "count": len(members)},
	)
	return ParticipantRepair(participants=members, participant_names=aligned)
