"""Chat session error conditions, each separately reportable."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Optional

from bot_console.core.errors import ConsoleError
from bot_console.core.types import SessionState


class ErrorKind(StrEnum):
    BOT_UNAVAILABLE = "bot_unavailable"
    WEBHOOK_MISCONFIGURED = "webhook_misconfigured"
    WEBHOOK_UNAVAILABLE = "webhook_unavailable"
    DELIVERY_FAILED = "delivery_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    INVALID_DETAILS = "invalid_details"


class ChatSessionError(ConsoleError):
    kind: ErrorKind
    fatal: bool = False


class BotUnavailableError(ChatSessionError):
    """The bot is missing or inactive."""

    kind = ErrorKind.BOT_UNAVAILABLE
    fatal = True


class WebhookMisconfiguredError(ChatSessionError):
    """The bot has no webhook URL, or the webhook failed its health probe at startup."""

    kind = ErrorKind.WEBHOOK_MISCONFIGURED
    fatal = True


class WebhookUnavailableError(ChatSessionError):
    """The webhook failed its probe before a send; nothing was sent."""

    kind = ErrorKind.WEBHOOK_UNAVAILABLE


class MessageDeliveryError(ChatSessionError):
    """The message POST failed or timed out; a fallback reply was appended."""

    kind = ErrorKind.DELIVERY_FAILED


class PersistenceError(ChatSessionError):
    """Saving the finished session failed; the session was still closed locally."""

    kind = ErrorKind.PERSISTENCE_FAILED


class DetailsValidationError(ChatSessionError):
    kind = ErrorKind.INVALID_DETAILS

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidTransitionError(ConsoleError):
    def __init__(self, current: SessionState, target: SessionState):
        super().__init__(f"Cannot move chat session from {current} to {target}")
        self.current = current
        self.target = target
