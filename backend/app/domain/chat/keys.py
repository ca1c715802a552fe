"""Canonical room identifiers."""

from __future__ import annotations

import hashlib
from typing import Optional

KEY_LENGTH = 32
SCOPE_SEPARATOR = "_scope_"


def derive_key(user_a: str, user_b: str, scope_id: Optional[str] = None) -> str:
	"""Return the room id for a pair of users, optionally scoped to one item.

	The pair is sorted first so the key does not depend on who opened the room.
	"""
	first, second = sorted((str(user_a), str(user_b)))
	material = f"{first}_{second}"
	if scope_id:
		material = f"{material}{SCOPE_SEPARATOR}{scope_id}"
	return hashlib.sha256(material.encode("utf-8")).hexdigest()[:KEY_LENGTH]
