"""Participant list cleaning, credential recovery and legacy-shape normalization."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Protocol

from .identifiers import is_valid_identifier, looks_like_credential
from .models import LEGACY_PAIR_FIELDS, LegacyPair, MembershipShape, ParticipantSet

logger = logging.getLogger(__name__)


class CredentialVerifier(Protocol):
	async def verify_credential(self, token: str) -> Optional[str]:
		...


def _entries(raw: object) -> List[str]:
	if not isinstance(raw, (list, tuple)):
		return []
	entries: List[str] = []
	for item in raw:
		if item is None:
			continue
		text = str(item).strip()
		if text:
			entries.append(text)
	return entries


def sanitize(raw: object) -> List[str]:
	"""Keep valid identifiers only, deduplicated in first-seen order."""
	cleaned: List[str] = []
	seen: set[str] = set()
	for entry in _entries(raw):
		if not is_valid_identifier(entry):
			logger.warning("participant_entry_dropped", extra={"entry_length": len(entry)})
			continue
		if entry in seen:
			continue
		cleaned.append(entry)
		seen.add(entry)
	return cleaned


async def _decode(verifier: CredentialVerifier, token: str, timeout: Optional[float]) -> Optional[str]:
	try:
		if timeout is None:
			return await verifier.verify_credential(token)
		return await asyncio.wait_for(verifier.verify_credential(token), timeout=timeout)
	except asyncio.TimeoutError:
		logger.warning("credential_decode_timeout", extra={"timeout_s": timeout})
	except Exception:
		logger.warning("credential_decode_error", exc_info=True)
	return None


async def resolve_entries(
	raw: object,
	verifier: CredentialVerifier,
	*,
	timeout: Optional[float] = None,
) -> List[Optional[str]]:
	"""Map each stored entry, by position, to the identifier it stands for.

	Valid identifiers map to themselves, decodable credentials to the decoded
	identifier, everything else to None.
	"""
	resolved: List[Optional[str]] = []
	for entry in _entries(raw):
		if is_valid_identifier(entry):
			resolved.append(entry)
			continue
		if not looks_like_credential(entry):
			resolved.append(None)
			continue
		recovered = await _decode(verifier, entry, timeout)
		if not recovered or not is_valid_identifier(recovered):
			resolved.append(None)
			continue
		recovered = recovered.strip()
		logger.info("participant_recovered_from_credential", extra={"user_id": recovered})
		resolved.append(recovered)
	return resolved


def fold_recovered(raw: object, resolved: Iterable[Optional[str]]) -> List[str]:
	"""Sanitized entries followed by any newly resolved identifiers."""
	cleaned = sanitize(raw)
	seen = set(cleaned)
	for recovered in resolved:
		if recovered is None or recovered in seen:
			continue
		cleaned.append(recovered)
		seen.add(recovered)
	return cleaned


async def attempt_recover(
	raw: object,
	verifier: CredentialVerifier,
	*,
	timeout: Optional[float] = None,
) -> List[str]:
	"""Sanitize, then fold in identifiers decoded from stray credentials.

	Entries that fail to decode are dropped; the result is the best known
	membership and may hold fewer or more than two entries.
	"""
	return fold_recovered(raw, await resolve_entries(raw, verifier, timeout=timeout))


def positional_members(raw: object) -> List[Optional[str]]:
	"""Stored entries by position, with anything that is not an identifier as None."""
	return [entry if is_valid_identifier(entry) else None for entry in _entries(raw)]


def legacy_pair(data: Mapping[str, Any]) -> Optional[LegacyPair]:
	for first, second in LEGACY_PAIR_FIELDS:
		party_a = str(data.get(first) or "").strip()
		party_b = str(data.get(second) or "").strip()
		if party_a and party_b:
			return LegacyPair(party_a=party_a, party_b=party_b)
	return None


def is_valid_pair(pair: Optional[LegacyPair]) -> bool:
	if pair is None:
		return False
	return (
		is_valid_identifier(pair.party_a)
		and is_valid_identifier(pair.party_b)
		and pair.party_a != pair.party_b
	)


def membership_shapes(data: Mapping[str, Any]) -> List[MembershipShape]:
	shapes: List[MembershipShape] = []
	raw = data.get("participants")
	if isinstance(raw, (list, tuple)):
		shapes.append(ParticipantSet(members=tuple(_entries(raw))))
	pair = legacy_pair(data)
	if pair is not None:
		shapes.append(pair)
	return shapes


@dataclass(slots=True)
class MembershipView:
	participants: List[str]
	stored: List[str] = field(default_factory=list)
	dropped: List[str] = field(default_factory=list)
	legacy: Optional[LegacyPair] = None
	source: str = "participants"

	@property
	def changed(self) -> bool:
		return self.participants != self.stored

	@property
	def recoverable(self) -> List[str]:
		return [entry for entry in self.dropped if looks_like_credential(entry)]


def normalize_membership(data: Mapping[str, Any]) -> MembershipView:
	"""Fold every membership shape on a record into one participant list.

	The stored list wins unless it is corrupted (entries dropped, or not two
	clean members) and the legacy pair is a valid distinct pair.
	"""
	stored: List[str] = []
	legacy: Optional[LegacyPair] = None
	for shape in membership_shapes(data):
		if isinstance(shape, ParticipantSet):
			stored = list(shape.members)
		else:
			legacy = shape
	cleaned = sanitize(stored)
	dropped = [entry for entry in stored if not is_valid_identifier(entry)]
	corrupted = bool(dropped) or len(cleaned) != 2
	if corrupted and is_valid_pair(legacy):
		assert legacy is not None
		return MembershipView(
			participants=sanitize(list(legacy.members())),
			stored=stored,
			dropped=dropped,
			legacy=legacy,
			source="legacy",
		)
	return MembershipView(
		participants=cleaned,
		stored=stored,
		dropped=dropped,
		legacy=legacy,
		source="participants",
	)


def contains_all(participants: Iterable[str], *user_ids: str) -> bool:
	members = set(participants)
	return all(user_id in members for user_id in user_ids)
