"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class BotType(StrEnum):
    VOICE = "voice"
    CHAT = "chat"
    WHATSAPP = "whatsapp"
    SMS = "sms"


class Sender(StrEnum):
    USER = "user"
    AGENT = "agent"


class SessionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class SessionState(StrEnum):
    RESOLVING_BOT = "resolving_bot"
    AWAITING_DETAILS = "awaiting_details"
    ACTIVE = "active"
    DISCONNECTING = "disconnecting"
    CLOSED = "closed"
    ERRORED = "errored"
