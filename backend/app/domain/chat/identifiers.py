"""Heuristics separating user identifiers from bearer credentials.

Identifiers issued by the identity provider are short (tens of characters)
and never contain a ``.``. Bearer credentials are dot-delimited JWTs that run
to hundreds of characters. These thresholds track that provider's formats.
"""

from __future__ import annotations

MAX_IDENTIFIER_LENGTH = 100
CREDENTIAL_DELIMITER = "."
CREDENTIAL_SEGMENTS = 3


def is_valid_identifier(value: object) -> bool:
	if not value or not isinstance(value, str):
		return False
	text = value.strip()
	if not text:
		return False
	if len(text) > MAX_IDENTIFIER_LENGTH:
		return False
	if CREDENTIAL_DELIMITER in text:
		return False
	return True


def looks_like_credential(value: object) -> bool:
	"""True when a rejected entry is worth handing to the credential verifier."""
	if not isinstance(value, str):
		return False
	text = value.strip()
	if len(text) > MAX_IDENTIFIER_LENGTH:
		return True
	segments = text.split(CREDENTIAL_DELIMITER)
	return len(segments) == CREDENTIAL_SEGMENTS and all(segments)
