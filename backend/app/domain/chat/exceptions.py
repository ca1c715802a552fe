"""Domain-level exceptions for chat rooms and messages."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for chat errors."""

    reason: str = "unknown"
    status_code: int = 400

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class InvalidIdentifier(ChatError):
    reason = "invalid_identifier"


class InvalidOperation(ChatError):
    reason = "invalid_operation"


class InvalidArgument(ChatError):
    reason = "invalid_argument"


class NotFound(ChatError):
    reason = "conversation_not_found"
    status_code = 404


class ScopeNotFound(NotFound):
    reason = "product_not_found"


class Denied(ChatError):
    reason = "not_participant"
    status_code = 403


class CreationFailed(ChatError):
    """Participant invariant broken where exactly two members are required."""

    reason = "creation_failed"
    status_code = 500
